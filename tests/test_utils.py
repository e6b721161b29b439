"""Unit tests for notelog.services.utils."""
from notelog.services.classifier import parse_candidate_items
from notelog.services.utils import _try_close_truncated_json, extract_item_list, parse_json_response


def test_parse_json_response_plain_array():
    s = '[{"target_text": "犬"}]'
    assert parse_json_response(s) == [{"target_text": "犬"}]


def test_parse_json_response_markdown_json():
    s = '```json\n[{"a": 1}]\n```'
    assert parse_json_response(s) == [{"a": 1}]


def test_parse_json_response_markdown_no_lang():
    s = '```\n{"a": 1}\n```'
    assert parse_json_response(s) == {"a": 1}


def test_parse_json_response_preamble():
    s = 'Here are the items:\n\n[{"target_text": "猫"}]'
    assert parse_json_response(s) == [{"target_text": "猫"}]


def test_parse_json_response_trailing_extra_data():
    s = '[1, 2]\n\nAdditional explanation here.'
    assert parse_json_response(s) == [1, 2]


def test_parse_json_response_invalid_returns_none():
    assert parse_json_response("not json at all") is None
    assert parse_json_response("") is None
    assert parse_json_response(None) is None


def test_extract_item_list_shapes():
    assert extract_item_list([{"a": 1}]) == [{"a": 1}]
    assert extract_item_list({"items": [{"a": 1}]}) == [{"a": 1}]
    assert extract_item_list({"target_text": "犬"}) is None
    assert extract_item_list("text") is None


def test_parse_json_response_repairs_trailing_comma_array():
    s = '[{"target_text": "犬", "native_text": "dog",}, {"target_text": "猫", "native_text": "cat"}]'
    assert parse_json_response(s) == [
        {"target_text": "犬", "native_text": "dog"},
        {"target_text": "猫", "native_text": "cat"},
    ]


def test_parse_candidate_items_survives_malformed_json():
    items = parse_candidate_items(
        '```json\n[{"target_text": "犬", "native_text": "dog",}, {"target_text": "猫", "native_text": "cat"}]\n```'
    )
    assert [(i.target_text, i.native_text) for i in items] == [("犬", "dog"), ("猫", "cat")]


def test_parse_json_response_truncated_array_keeps_complete_items():
    s = '[{"target_text": "犬", "native_text": "dog"}, {"target_text": "猫", "nat'
    assert parse_json_response(s) == [{"target_text": "犬", "native_text": "dog"}]


def test_try_close_truncated_json():
    assert _try_close_truncated_json('[{"a": 1},') == '[{"a": 1}]'
    assert _try_close_truncated_json('{"a":') == '{"a": null}'
    assert _try_close_truncated_json('[{"a": "x, y') == '[{"a": "x, y"}]'
    assert _try_close_truncated_json('[{"a": "}"}]') == '[{"a": "}"}]'

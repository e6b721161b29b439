"""Utility functions for parsing LLM responses."""
import json
import logging

import json_repair

logger = logging.getLogger(__name__)

_CLOSERS = {"{": "}", "[": "]"}


def _preprocess_response(response: str) -> str:
    """Strip markdown fences and preamble; return content from the first '[' or '{'."""
    response = (response or "").strip()
    if response.startswith("```json"):
        response = response[7:]
    if response.startswith("```"):
        response = response[3:]
    if response.endswith("```"):
        response = response[:-3]
    response = response.strip()
    starts = [i for i in (response.find("["), response.find("{")) if i >= 0]
    if starts:
        response = response[min(starts):]
    return response


def _try_close_truncated_json(s: str) -> str:
    """If the JSON stops mid-structure, close the open string and every open bracket."""
    s = s.rstrip()
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in s:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in ("}", "]") and stack:
            stack.pop()
    if not stack and not in_string:
        return s
    if in_string:
        s += '"'
    s = s.rstrip()
    # Ended after a comma or a key: drop the dangling separator / give the key a value
    if s.endswith(","):
        s = s[:-1]
    elif s.endswith(":"):
        s += " null"
    return s + "".join(_CLOSERS[opener] for opener in reversed(stack))


def _cut_at_last_object(s: str) -> str | None:
    """Everything up to the last complete '}', with open brackets closed (drops a cut-off trailing item)."""
    last_brace = s.rfind("}")
    if last_brace <= 0:
        return None
    return _try_close_truncated_json(s[: last_brace + 1])


def _repair(candidate: str | None):
    if not candidate:
        return None
    try:
        obj = json_repair.loads(candidate)
    except Exception as repair_err:
        logger.debug("json_repair failed: %s", repair_err)
        return None
    return obj if isinstance(obj, (list, dict)) else None


def parse_json_response(response: str):
    """Parse an LLM JSON response (array or object). Returns the decoded value, or None if unusable.

    Tries: 1) strict parse (trailing prose tolerated), 2) strict parse cut at the last
    complete object, 3) json_repair on the full text, 4) json_repair on the cut text,
    5) json_repair after closing truncated JSON.
    """
    cleaned = _preprocess_response(response)
    if not cleaned:
        return None

    dec = json.JSONDecoder()
    try:
        value, _end = dec.raw_decode(cleaned)
        return value
    except json.JSONDecodeError as e:
        logger.warning("JSON parse error: %s (first 200 chars: %r)", e, cleaned[:200])

    partial = _cut_at_last_object(cleaned)
    if partial:
        try:
            value, _end = dec.raw_decode(partial)
            logger.warning("Recovered partial JSON by truncating at last complete object")
            return value
        except json.JSONDecodeError:
            pass

    value = _repair(cleaned)
    if value is not None:
        logger.warning("Recovered JSON using json_repair after strict parse failed")
        return value

    value = _repair(partial)
    if value is not None:
        logger.warning("Recovered JSON using json_repair on truncated string")
        return value

    closed = _try_close_truncated_json(cleaned)
    if closed != cleaned:
        value = _repair(closed)
        if value is not None:
            logger.warning("Recovered JSON by closing truncated string and using json_repair")
            return value

    logger.error("Could not parse LLM response as JSON (first 500 chars: %r)", cleaned[:500])
    return None


def extract_item_list(parsed) -> list | None:
    """Accept a top-level array, or an object wrapping the array under 'items'."""
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("items"), list):
        return parsed["items"]
    return None

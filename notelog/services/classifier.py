"""
Note classifier client.

Sends a whole note file to the configured LLM and turns the JSON answer into
:class:`CandidateItem` objects. Retries happen here:

* rate limiting -> fixed delay between attempts; once the budget is spent the
  result is ``RATE_LIMIT_EXCEEDED`` so the batch can defer the whole file;
* connection resets / timeouts -> exponential backoff, capped;
* truncated output and everything else -> no retry.

The client never raises for provider failures; it returns an
:class:`AnalysisResult` whose ``error`` tells the caller what happened.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from notelog.exceptions import (
    RateLimitedError,
    ResponseTruncatedError,
    TransientProviderError,
)
from notelog.pipeline.config import PipelineConfig
from notelog.pipeline.records import CandidateItem
from notelog.services.credentials import CredentialProvider
from notelog.services.llm_provider import LLMProvider, get_llm_provider
from notelog.services.utils import extract_item_list, parse_json_response

logger = logging.getLogger(__name__)

CATEGORIES = (
    "Noun", "Verb", "Adjective", "Adverb", "Pronoun", "Determiner", "Preposition",
    "Postposition", "Particle", "Conjunction", "Numeral", "Interjection", "Prefix",
    "Suffix", "Counter", "Expression / Phrase", "Grammar Point / Rule", "Other",
)

SYSTEM_INSTRUCTION = f"""You help a language learner turn free-form study notes into structured entries.
Read the full note and extract every distinct vocabulary item, phrase, grammar point or
example sentence. Answer with a single JSON array of objects, in the order the items
appear in the note, and nothing else.

Each object has these keys (use null when a value is not present):
- "target_text": the item in the language being learned, in dictionary/base form where that applies. Required.
- "native_text": the learner's translation or gloss.
- "category_guess": one of {list(CATEGORIES)}.
- "notes": explanations written next to the item in the note.
- "example_sentence": the sentence itself, when the item is an example sentence.
- "date_context": the date heading the item sits under, formatted YYYY-MM-DD.
- "character_form": the primary-script spelling (e.g. kanji/hanzi/hanja) when distinct from target_text.
- "reading_form": the full phonetic spelling (e.g. kana, hangul reading).
- "romanization": a standard romanization (Hepburn, pinyin, ...).
- "writing_system_note": a short note such as "Kanji+Okurigana" or "Katakana only".
- "script_annotations": for logographic characters only, a list of
  {{"base_char": <one character>, "annotation": <its reading>, "annotation_type": "reading"}}
  in the order the characters appear; null when there is nothing to annotate.
- "original_snippet": the line(s) of the note the item came from.

Keep every character exactly as written (accents, diacritics, punctuation). Lines such as
"target - native", "target = native" or "target (native)" contain both texts. Bullet and
numbered lines are usually separate items. Headings introduce the items below them.
Ignore markdown syntax and text that is not language-learning content."""


class ClassifierErrorCode(str, Enum):
    API_KEY_MISSING = "API_KEY_MISSING"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    MAX_TOKENS_EXCEEDED = "MAX_TOKENS_EXCEEDED"
    ANALYSIS_FAILED = "ANALYSIS_FAILED"


@dataclass
class AnalysisResult:
    items: list[CandidateItem] = field(default_factory=list)
    error: ClassifierErrorCode | None = None
    error_details: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _BadResponse(Exception):
    """The model answered, but not with a JSON array of items."""


def parse_candidate_items(response_text: str) -> list[CandidateItem]:
    parsed = parse_json_response(response_text)
    if parsed is None:
        raise _BadResponse("AI response was not valid JSON.")
    raw_items = extract_item_list(parsed)
    if raw_items is None:
        raise _BadResponse("AI response was not in the expected array format.")
    return [CandidateItem.from_dict(raw) for raw in raw_items if isinstance(raw, dict)]


class ClassifierClient:
    """Raw note text -> candidate items (or a classified failure)."""

    def __init__(
        self,
        credentials: CredentialProvider,
        *,
        provider_factory: Callable[[str], LLMProvider] = get_llm_provider,
        config: PipelineConfig | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.credentials = credentials
        self.provider_factory = provider_factory
        self.config = config or PipelineConfig()
        self._sleep = sleep

    async def analyze_note_content(self, note_content: str) -> AnalysisResult:
        api_key = await self.credentials.get()
        if not api_key:
            logger.warning("analyze_note_content called but the API key is missing.")
            return AnalysisResult(
                error=ClassifierErrorCode.API_KEY_MISSING,
                error_details="API key not found in environment or settings.",
            )

        logger.info("Starting analysis for content (%s KB)...", round(len(note_content) / 1024))
        try:
            provider = self.provider_factory(api_key)
            response_text = await self._generate_with_retry(provider, note_content)
            items = parse_candidate_items(response_text)
        except RateLimitedError as exc:
            return AnalysisResult(
                error=ClassifierErrorCode.RATE_LIMIT_EXCEEDED,
                error_details=exc.details or "API rate limit was hit after multiple retries.",
            )
        except ResponseTruncatedError:
            return AnalysisResult(
                error=ClassifierErrorCode.MAX_TOKENS_EXCEEDED,
                error_details="The AI's response was too long and was truncated.",
            )
        except Exception as exc:
            logger.error("Error during analysis: %s", exc, exc_info=True)
            return AnalysisResult(
                error=ClassifierErrorCode.ANALYSIS_FAILED,
                error_details=str(exc) or exc.__class__.__name__,
            )

        logger.info("Analysis successful: %s items extracted.", len(items))
        return AnalysisResult(items=items)

    async def _generate_with_retry(self, provider: LLMProvider, note_content: str) -> str:
        cfg = self.config
        max_attempts = cfg.classifier_max_retries + 1
        backoff = cfg.classifier_initial_backoff_seconds
        attempt = 0
        while True:
            attempt += 1
            logger.info("Calling classifier, attempt %s/%s...", attempt, max_attempts)
            try:
                return await provider.generate(note_content, system_instruction=SYSTEM_INSTRUCTION)
            except RateLimitedError:
                if attempt >= max_attempts:
                    logger.error("Max retries (%s) reached for rate limit error.", cfg.classifier_max_retries)
                    raise
                delay = cfg.classifier_rate_limit_delay_seconds
                logger.warning(
                    "Rate limit hit. Retrying attempt %s/%s after %ss...",
                    attempt, cfg.classifier_max_retries, delay,
                )
                await self._sleep(delay)
            except TransientProviderError as exc:
                if attempt >= max_attempts:
                    logger.error("Transient errors persisted after %s attempts: %s", attempt, exc)
                    raise
                logger.warning(
                    "Transient error (%s). Retrying attempt %s/%s after %ss...",
                    exc, attempt, cfg.classifier_max_retries, backoff,
                )
                await self._sleep(backoff)
                backoff = min(backoff * 2, cfg.classifier_max_backoff_seconds)

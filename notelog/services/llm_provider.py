"""LLM Provider abstraction for the note classifier.

To add a new LLM module:
1. Implement a class that subclasses LLMProvider and implements generate().
2. Call register_provider("name", factory) where factory is a callable (config_dict) -> LLMProvider.
3. Add a YAML under notelog/llm_configs/ with provider: "name" and any provider-specific keys.

Providers translate their transport failures into the notelog exception types
(RateLimitedError, TransientProviderError, ResponseTruncatedError, ProviderError);
retry policy lives in the classifier, not here.
"""
from abc import ABC, abstractmethod
from typing import Callable, Dict, Any
import asyncio
import json
import logging
import urllib.error
import urllib.request

from notelog.exceptions import (
    ProviderError,
    RateLimitedError,
    ResponseTruncatedError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

# Registry: provider name -> factory(config: dict) -> LLMProvider
_PROVIDER_REGISTRY: Dict[str, Callable[[Dict[str, Any]], "LLMProvider"]] = {}


def register_provider(name: str, factory: Callable[[Dict[str, Any]], "LLMProvider"]) -> None:
    """Register an LLM provider. factory(config_dict) must return an LLMProvider instance."""
    name = (name or "").lower().strip()
    if not name:
        raise ValueError("Provider name must be non-empty")
    _PROVIDER_REGISTRY[name] = factory


def list_providers() -> list[str]:
    """Names accepted by get_llm_provider()."""
    return sorted(_PROVIDER_REGISTRY.keys())


class LLMProvider(ABC):
    """Turns one prompt into one complete text response."""

    @abstractmethod
    async def generate(self, prompt: str, *, system_instruction: str | None = None, **kwargs) -> str:
        """Return the full response text. Raise notelog provider errors on failure."""
        pass


def _gemini_request(url: str, body: dict, timeout: float) -> dict:
    """Blocking Gemini REST call. Raises notelog provider errors; returns decoded JSON on 2xx."""
    data = json.dumps(body).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        try:
            err_body = e.read().decode("utf-8")
        except Exception:
            err_body = ""
        err_json = None
        try:
            err_json = json.loads(err_body) if err_body else None
        except ValueError:
            pass
        err = (err_json or {}).get("error") if isinstance(err_json, dict) else None
        exhausted = isinstance(err, dict) and err.get("code") == 429 and err.get("status") == "RESOURCE_EXHAUSTED"
        if e.code == 429 or exhausted:
            raise RateLimitedError(f"Gemini API rate limit: {e.code}", details=err_json or err_body) from e
        raise ProviderError(f"API Error {e.code}: {e.reason}", details=err_json or err_body) from e
    except (urllib.error.URLError, TimeoutError, ConnectionError) as e:
        raise TransientProviderError(f"Gemini API connection error: {e}") from e
    except json.JSONDecodeError as e:
        raise ProviderError(f"Gemini API returned a non-JSON body: {e}") from e


def _gemini_response_text(data: dict) -> str:
    candidates = data.get("candidates") or []
    if candidates:
        first = candidates[0] or {}
        if first.get("finishReason") == "MAX_TOKENS":
            raise ResponseTruncatedError("The response was too long and was truncated.")
        parts = (first.get("content") or {}).get("parts") or []
        if parts and parts[0].get("text"):
            return parts[0]["text"]
    raise ProviderError("Unexpected API response structure or empty parts.", details=data)


class GeminiProvider(LLMProvider):
    """Gemini via the Generative Language REST API. Uses urllib in a worker thread (no aiohttp)."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        temperature: float = 0.15,
        timeout: float = 300.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.temperature = temperature
        self.timeout = timeout

    def _url(self) -> str:
        return f"{self.base_url.rstrip('/')}/models/{self.model}:generateContent?key={self.api_key}"

    def _body(self, prompt: str, system_instruction: str | None, **kwargs) -> dict:
        body: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": kwargs.get("temperature", self.temperature),
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"role": "system", "parts": [{"text": system_instruction}]}
        return body

    async def generate(self, prompt: str, *, system_instruction: str | None = None, **kwargs) -> str:
        """Generate complete response from Gemini. Sync HTTP runs in a thread."""
        body = self._body(prompt, system_instruction, **kwargs)
        data = await asyncio.to_thread(_gemini_request, self._url(), body, self.timeout)
        return _gemini_response_text(data)


def _gemini_factory(config: Dict[str, Any]) -> "LLMProvider":
    """Build GeminiProvider from config dict (for registry)."""
    gemini = config.get("gemini") or {}
    from notelog.config import GEMINI_BASE_URL, GEMINI_MODEL, GEMINI_TIMEOUT_SECONDS
    api_key = config.get("api_key") or gemini.get("api_key")
    if not api_key:
        raise ValueError("Gemini requires an api_key")
    options = config.get("options") or {}
    return GeminiProvider(
        api_key=api_key,
        model=config.get("model") or GEMINI_MODEL,
        base_url=gemini.get("base_url") or GEMINI_BASE_URL,
        temperature=float(options.get("temperature", 0.15)),
        timeout=float(gemini.get("timeout") or GEMINI_TIMEOUT_SECONDS),
    )


def _openai_factory(config: Dict[str, Any]) -> "LLMProvider":
    """Build OpenAIProvider from a config dict. Needs the openai extra."""
    try:
        from notelog.services.llm_provider_openai import OpenAIProvider
    except ImportError:
        raise ImportError("OpenAI provider requires: pip install openai")
    from notelog.config import OPENAI_BASE_URL, OPENAI_MODEL
    openai_config = config.get("openai") or {}
    api_key = config.get("api_key") or openai_config.get("api_key")
    if not api_key:
        raise ValueError("OpenAI requires an api_key")
    options = config.get("options") or {}
    return OpenAIProvider(
        api_key=api_key,
        model=config.get("model") or OPENAI_MODEL,
        base_url=openai_config.get("base_url") or OPENAI_BASE_URL,
        temperature=float(options.get("temperature", 0.15)),
    )


register_provider("gemini", _gemini_factory)
register_provider("openai", _openai_factory)


def default_llm_config() -> Dict[str, Any]:
    """The YAML named by LLM_CONFIG_NAME (if any), else just the LLM_PROVIDER env setting."""
    from notelog.config import LLM_CONFIG_NAME, LLM_PROVIDER
    from notelog.services.llm_config import get_llm_config

    return (get_llm_config(LLM_CONFIG_NAME) if LLM_CONFIG_NAME else None) or {"provider": LLM_PROVIDER}


def resolve_provider_name(config: Dict[str, Any] | None = None) -> str:
    """Normalized provider name from *config* (default: the configured one)."""
    if config is None:
        config = default_llm_config()
    return (config.get("provider") or "").lower().strip()


def get_llm_provider(api_key: str, config: Dict[str, Any] | None = None) -> LLMProvider:
    """Build the configured provider for *api_key*. *config* defaults to default_llm_config()."""
    if config is None:
        config = default_llm_config()
    cfg = {**config, "api_key": api_key}
    provider_name = resolve_provider_name(cfg)
    factory = _PROVIDER_REGISTRY.get(provider_name)
    if factory:
        return factory(cfg)
    raise ValueError(f"Unknown LLM provider: {provider_name}. Registered: {list_providers()}")

"""
Article synthesis: fragment text -> title / content / summary / tags / category.

The text-generation backend is pluggable.  ``OllamaTextGenerator`` talks to
Ollama's ``/api/chat`` endpoint over httpx; ``OpenAITextGenerator`` uses the
OpenAI chat completions API in JSON mode.  Both raise
``GenerationServiceError`` on any transport or HTTP failure.

The Synthesizer never retries: one failed call fails the run.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
import openai
from openai import AsyncOpenAI

from medinews.config import settings
from medinews.models.database_models import ArticleCategory
from medinews.services.errors import GenerationServiceError, IncompleteGeneration
from medinews.utils.helpers import dedupe_preserving_order, parse_json_robust

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are a professional medical news writer. Always return valid JSON.\
"""

_ARTICLE_PROMPT = """\
You are a medical news specialist. Rewrite the information below as a medical \
news article that is easy to understand, engaging and accurate.

REQUIREMENTS:
- Write in {language}
- An engaging title (50-80 characters)
- Body of 300-500 words, split into short paragraphs
- A concise summary (100-150 words)
- 3-5 relevant tags
- Category: one of medical / health / research / news
- Preserve medical accuracy; do not invent facts
- Professional journalistic style

SOURCE INFORMATION:
---
{fragment_text}
---

Return ONLY a JSON object, no markdown:
{{
  "title": "...",
  "content": "...",
  "summary": "...",
  "tags": ["tag1", "tag2", "tag3"],
  "category": "medical"
}}\
"""


# ---------------------------------------------------------------------------
# Text-generation backends
# ---------------------------------------------------------------------------

class TextGenerator(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


class OllamaTextGenerator:
    """Ollama ``/api/chat`` client in JSON mode."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or settings.OLLAMA_LLM_MODEL
        self.timeout_seconds = timeout or settings.TEXT_GENERATION_TIMEOUT
        self.timeout = httpx.Timeout(self.timeout_seconds, connect=10.0)
        self._transport = transport

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/api/chat",
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": user_prompt},
                        ],
                        "stream": False,
                        "format": "json",
                        "options": {
                            "temperature": settings.TEXT_TEMPERATURE,
                            "num_predict": settings.TEXT_MAX_TOKENS,
                        },
                    },
                )
        except httpx.TimeoutException as exc:
            raise GenerationServiceError(
                f"Text generation timed out after {self.timeout_seconds:.0f} s"
            ) from exc
        except httpx.HTTPError as exc:
            raise GenerationServiceError(f"Text generation request failed: {exc}") from exc

        if resp.status_code != 200:
            raise GenerationServiceError(
                f"Ollama returned HTTP {resp.status_code}: {resp.text[:300]}"
            )

        try:
            content = resp.json().get("message", {}).get("content", "")
        except ValueError as exc:
            raise GenerationServiceError("Ollama returned a non-JSON body") from exc

        if not content or not content.strip():
            raise GenerationServiceError("Empty response from text generation service")
        return content

    async def ping(self) -> bool:
        """Return True if Ollama is reachable and the configured model is pulled."""
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                resp = await client.get(f"{self.base_url}/api/tags")
            if resp.status_code != 200:
                return False
            available = [m.get("name", "") for m in resp.json().get("models", [])]
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Ollama health check failed: %s", exc)
            return False
        family = self.model.split(":")[0]
        return any(name == self.model or name.startswith(family) for name in available)


class OpenAITextGenerator:
    """OpenAI chat completions client in JSON mode."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key or settings.OPENAI_API_KEY
        self.model = model or settings.OPENAI_TEXT_MODEL
        self.timeout_seconds = timeout or settings.TEXT_GENERATION_TIMEOUT
        self._http_client = http_client
        self._client: Optional[AsyncOpenAI] = None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.api_key:
                raise GenerationServiceError("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.timeout_seconds,
                max_retries=0,
                http_client=self._http_client,
            )
        return self._client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=settings.TEXT_TEMPERATURE,
                max_tokens=settings.TEXT_MAX_TOKENS,
            )
        except openai.APITimeoutError as exc:
            raise GenerationServiceError(
                f"Text generation timed out after {self.timeout_seconds:.0f} s"
            ) from exc
        except openai.OpenAIError as exc:
            raise GenerationServiceError(f"OpenAI text generation failed: {exc}") from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise GenerationServiceError("Empty response from text generation service")
        return content

    async def ping(self) -> bool:
        return bool(self.api_key)


def build_text_generator() -> TextGenerator:
    """Return the backend selected by ``settings.TEXT_PROVIDER``."""
    provider = settings.TEXT_PROVIDER.strip().lower()
    if provider == "openai":
        return OpenAITextGenerator()
    if provider != "ollama":
        logger.warning("Unknown TEXT_PROVIDER %r, falling back to ollama", settings.TEXT_PROVIDER)
    return OllamaTextGenerator()


# ---------------------------------------------------------------------------
# Synthesizer
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class SynthesisResult:
    title: str
    content: str
    summary: str
    tags: List[str]
    category: ArticleCategory


class Synthesizer:
    """Turns one fragment into structured article fields."""

    SYSTEM_PROMPT = _SYSTEM_PROMPT
    ARTICLE_PROMPT = _ARTICLE_PROMPT
    DEFAULT_CATEGORY = ArticleCategory.MEDICAL
    VALID_CATEGORIES = frozenset(c.value for c in ArticleCategory)

    def __init__(
        self,
        generator: TextGenerator,
        max_prompt_chars: Optional[int] = None,
        language: Optional[str] = None,
    ) -> None:
        self._generator = generator
        self.max_prompt_chars = max_prompt_chars or settings.MAX_PROMPT_CHARS
        self.language = language or settings.ARTICLE_LANGUAGE

    def build_prompt(self, fragment_text: str) -> str:
        return self.ARTICLE_PROMPT.format(
            language=self.language,
            fragment_text=fragment_text.strip()[: self.max_prompt_chars],
        )

    async def synthesize(self, fragment_text: str) -> SynthesisResult:
        """
        Generate article fields from *fragment_text*.

        Raises:
            GenerationServiceError: transport failure or unparseable response.
            IncompleteGeneration: title, content or summary missing or blank.
        """
        raw = await self._generator.complete(self.SYSTEM_PROMPT, self.build_prompt(fragment_text))
        result = self.parse_response(raw)
        logger.info(
            "✓ Synthesized article %r (category=%s, %d tags)",
            result.title[:80],
            result.category.value,
            len(result.tags),
        )
        return result

    def parse_response(self, raw: str) -> SynthesisResult:
        ok, data = parse_json_robust(raw)
        if not ok:
            raise GenerationServiceError("Text generation response is not valid JSON")
        if isinstance(data, list) and len(data) == 1 and isinstance(data[0], dict):
            data = data[0]
        if not isinstance(data, dict):
            raise GenerationServiceError(
                f"Expected a JSON object, got {type(data).__name__}"
            )

        fields: Dict[str, str] = {}
        missing: List[str] = []
        for name in ("title", "content", "summary"):
            value = data.get(name)
            text = value.strip() if isinstance(value, str) else ""
            if not text:
                missing.append(name)
            fields[name] = text
        if missing:
            raise IncompleteGeneration(
                f"Generated article is missing required field(s): {', '.join(missing)}"
            )

        return SynthesisResult(
            title=fields["title"],
            content=fields["content"],
            summary=fields["summary"],
            tags=self._normalize_tags(data.get("tags")),
            category=self._normalize_category(data.get("category")),
        )

    def _normalize_category(self, value: Any) -> ArticleCategory:
        candidate = str(value).strip().lower() if value is not None else ""
        if candidate in self.VALID_CATEGORIES:
            return ArticleCategory(candidate)
        logger.debug("Unknown category %r, using %s", value, self.DEFAULT_CATEGORY.value)
        return self.DEFAULT_CATEGORY

    @staticmethod
    def _normalize_tags(value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return dedupe_preserving_order(
            v for v in value if isinstance(v, (str, int, float)) and not isinstance(v, bool)
        )

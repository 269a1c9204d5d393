"""
Best-effort illustration for a generated article.

``Illustrator.illustrate`` never raises.  Every image-stage problem is logged
and recorded in ``IllustrationResult.warnings``:

- no credential / generation error  -> no image
- persist error                     -> transient URL kept
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import List, Optional, Protocol

import httpx
import openai
from openai import AsyncOpenAI

from medinews.config import settings
from medinews.services.errors import ImageGenerationError, ImageStageDegraded
from medinews.utils.helpers import truncate_text

logger = logging.getLogger(__name__)


_IMAGE_PROMPT = """\
Create a professional medical illustration for a health news article.

Title: {title}
Topic: {category}
Summary: {summary}

Style: clean, modern medical infographic style with soft, calming colors \
(blues, whites, light greens). Professional and trustworthy appearance. \
No text overlays. Suitable for a medical news website.\
"""


class ImageGenerator(Protocol):
    async def generate_image(self, prompt: str) -> str:
        ...


class ImagePersister(Protocol):
    async def fetch_and_store(self, source_url: str, id_hint: str) -> str:
        ...


class OpenAIImageGenerator:
    """DALL-E client returning the transient URL of one generated image."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        size: Optional[str] = None,
        quality: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.model = model or settings.OPENAI_IMAGE_MODEL
        self.size = size or settings.IMAGE_SIZE
        self.quality = quality or settings.IMAGE_QUALITY
        self.timeout_seconds = timeout or settings.IMAGE_GENERATION_TIMEOUT
        self._client = AsyncOpenAI(
            api_key=api_key or settings.OPENAI_API_KEY,
            timeout=self.timeout_seconds,
            max_retries=0,
            http_client=http_client,
        )

    async def generate_image(self, prompt: str) -> str:
        try:
            response = await self._client.images.generate(
                model=self.model,
                prompt=prompt,
                n=1,
                size=self.size,
                quality=self.quality,
            )
        except openai.APITimeoutError as exc:
            raise ImageGenerationError(
                f"Image generation timed out after {self.timeout_seconds:.0f} s"
            ) from exc
        except openai.OpenAIError as exc:
            raise ImageGenerationError(f"Image generation failed: {exc}") from exc

        url = response.data[0].url if response.data else None
        if not url:
            raise ImageGenerationError("Image generation returned no URL")
        return url


def build_image_generator() -> Optional[ImageGenerator]:
    """Return a configured generator, or None when no credential is set."""
    if not settings.image_generation_enabled:
        return None
    return OpenAIImageGenerator()


@dataclasses.dataclass
class IllustrationResult:
    image_url: Optional[str] = None
    image_generated: bool = False
    image_persisted: bool = False
    warnings: List[str] = dataclasses.field(default_factory=list)


class Illustrator:
    """Generates an image for an article and persists it when possible."""

    IMAGE_PROMPT = _IMAGE_PROMPT
    SUMMARY_PROMPT_CHARS = 200

    def __init__(
        self,
        image_generator: Optional[ImageGenerator],
        persister: Optional[ImagePersister],
    ) -> None:
        self._generator = image_generator
        self._persister = persister

    def build_prompt(self, title: str, category: str, summary: str) -> str:
        return self.IMAGE_PROMPT.format(
            title=title,
            category=category,
            summary=truncate_text(summary, self.SUMMARY_PROMPT_CHARS, suffix=""),
        )

    async def illustrate(self, title: str, category: str, summary: str) -> IllustrationResult:
        result = IllustrationResult()

        if self._generator is None:
            result.warnings.append("Image generation skipped: OPENAI_API_KEY not configured")
            logger.info("Image generation skipped (no credential)")
            return result

        try:
            transient_url = await self._generator.generate_image(
                self.build_prompt(title, category, summary)
            )
        except ImageStageDegraded as exc:
            result.warnings.append(exc.message)
            logger.warning("⚠ %s", exc.message)
            return result
        except Exception as exc:
            result.warnings.append(f"Image generation failed: {exc}")
            logger.warning("⚠ Image generation failed unexpectedly: %s", exc, exc_info=True)
            return result

        result.image_generated = True
        result.image_url = transient_url
        logger.info("✓ Image generated")

        if self._persister is None:
            result.warnings.append("Image not persisted: no storage configured")
            return result

        id_hint = f"news_{uuid.uuid4().hex[:12]}"
        try:
            result.image_url = await self._persister.fetch_and_store(transient_url, id_hint)
            result.image_persisted = True
        except ImageStageDegraded as exc:
            result.warnings.append(f"Image persist failed, using temporary URL: {exc.message}")
            logger.warning("⚠ Image persist failed, keeping temporary URL: %s", exc.message)
        except Exception as exc:
            result.warnings.append(f"Image persist failed, using temporary URL: {exc}")
            logger.warning("⚠ Image persist failed unexpectedly: %s", exc, exc_info=True)

        return result

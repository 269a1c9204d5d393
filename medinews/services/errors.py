"""
Error taxonomy for the generation pipeline.

Every error carries a short ``reason`` code that the orchestrator copies into
``GenerationResult.failure_reason``.  Image-stage errors derive from
``ImageStageDegraded`` and are absorbed by the Illustrator; they never reach
the orchestrator.
"""
from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    reason: str = "PipelineError"

    def __init__(self, message: str = "") -> None:
        self.message = message or self.reason
        super().__init__(self.message)


class StoreUnavailable(PipelineError):
    """The content store or the durable store could not be reached."""

    reason = "StoreUnavailable"


class NoContentAvailable(PipelineError):
    """The fragment pool is empty (or exhausted with auto-reset disabled)."""

    reason = "NoContentAvailable"


class LowQualityFragment(PipelineError):
    """Every pick within the retry budget was too short or missing."""

    reason = "LowQualityFragment"


class GenerationServiceError(PipelineError):
    """Transport, HTTP or parse failure from the text-generation service."""

    reason = "GenerationServiceError"


class IncompleteGeneration(PipelineError):
    """The generated JSON lacks a non-blank title, content or summary."""

    reason = "IncompleteGeneration"


class PublishFailure(PipelineError):
    """The article transaction failed; nothing was marked consumed."""

    reason = "PublishFailure"


class FragmentAlreadyConsumed(PublishFailure):
    """A concurrent run already published this fragment in the current cycle."""

    reason = "FragmentAlreadyConsumed"


class ImageStageDegraded(PipelineError):
    """Non-fatal image-stage problem."""

    reason = "ImageStageDegraded"


class ImageGenerationError(ImageStageDegraded):
    reason = "ImageGenerationError"


class ImagePersistError(ImageStageDegraded):
    reason = "ImagePersistError"

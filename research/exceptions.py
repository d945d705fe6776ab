"""Exception types for the research pipeline.

Provider adapters never raise these past their boundary; they convert
failures into structured responses. The LLM client and the seller registry
do raise, and the stage that calls them decides whether to degrade or
propagate.
"""

from typing import Literal

from observability.logging import redact_secrets

ProviderErrorKind = Literal["not_configured", "auth", "rate_limited", "provider_error", "transport"]

__all__ = [
    "LLMError",
    "LLMNotConfiguredError",
    "LLMResponseError",
    "ProviderErrorKind",
    "RegistryError",
    "ResearchError",
    "VisualComparisonError",
    "redact_secrets",
]


class ResearchError(Exception):
    """Base class for research pipeline errors."""


class LLMError(ResearchError):
    """The language-model service failed or returned unusable output."""


class LLMNotConfiguredError(LLMError):
    """No language-model credential is configured."""


class LLMResponseError(LLMError):
    """The language-model response could not be parsed or validated."""


class VisualComparisonError(ResearchError):
    """A single pairwise image comparison failed."""

    def __init__(self, candidate_url: str, reason: str):
        self.candidate_url = candidate_url
        self.reason = reason
        super().__init__(f"Visual comparison failed for {candidate_url}: {reason}")


class RegistryError(ResearchError):
    """The seller registry could not be read."""

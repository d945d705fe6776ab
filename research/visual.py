"""Stage 4: pairwise image re-verification of search hits against the reference image."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator

from observability.metrics import visual_comparisons_total
from research.exceptions import LLMError, VisualComparisonError
from research.executors import run_bounded
from research.llm import LLMClient, extract_json
from research.models import UnifiedSearchResult, VisualMatchResult, VisualVerificationSummary

logger = logging.getLogger(__name__)

CONFIRMED_MATCH_SCORE = 85
LIKELY_MATCH_SCORE = 60

COMPARISON_PROMPT = """Compare these two images. The first is a poster we're researching. The second is a search result.

Determine:
1. Are these the SAME poster (same artwork, possibly a different scan, photo or condition)?
2. Or are they DIFFERENT artworks (perhaps by the same artist in a similar style)?

Return ONLY a JSON object:
{
  "visual_match": <0-100 similarity score>,
  "same_image": <true if definitely the same poster>,
  "same_style": <true if same artist/style but a different work>,
  "explanation": "<brief reason, max 50 words>"
}

Scoring guide:
- 90-100: definitely the same poster
- 70-89: very likely the same poster (minor photo/scan differences)
- 50-69: possibly the same, needs human review
- 30-49: same artist or style, different work
- 0-29: different or unrelated images"""


class _ComparisonPayload(BaseModel):
    visual_match: float = 0
    same_image: bool = False
    same_style: bool = False
    explanation: str = Field("No explanation provided")

    @field_validator("visual_match", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, (int, float)):
            return max(0, min(100, value))
        return value

    @field_validator("explanation", mode="before")
    @classmethod
    def _default_explanation(cls, value: Any) -> Any:
        return value or "No explanation provided"


class VisualComparator:
    """Vision-model comparison of a reference image with one candidate image."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    def is_configured(self) -> bool:
        return self.llm.is_configured()

    async def compare(self, reference_url: str, candidate_url: str) -> VisualMatchResult:
        """Raises ``VisualComparisonError``; a failure is never reported as a score."""
        try:
            completion = await self.llm.complete_with_images(
                COMPARISON_PROMPT, [reference_url, candidate_url], max_tokens=500
            )
            payload = _ComparisonPayload.model_validate(extract_json(completion.text))
        except (LLMError, ValidationError) as e:
            raise VisualComparisonError(candidate_url, str(e)) from e
        return VisualMatchResult(
            visual_match=payload.visual_match,
            same_image=payload.same_image,
            same_style=payload.same_style,
            explanation=payload.explanation,
        )


async def batch_compare_images(
    comparator: VisualComparator,
    reference_url: str,
    thumbnail_urls: Sequence[str],
    max_concurrent: int = 5,
    timeout_seconds: Optional[float] = None,
) -> Dict[str, VisualMatchResult]:
    """Compare every distinct thumbnail; failed or timed-out comparisons are left out of the map."""
    unique: List[str] = []
    for url in thumbnail_urls:
        if url and url not in unique:
            unique.append(url)

    outcomes = await run_bounded(
        unique,
        lambda url: comparator.compare(reference_url, url),
        max_concurrent=max_concurrent,
        timeout_seconds=timeout_seconds,
    )

    matches: Dict[str, VisualMatchResult] = {}
    for url, outcome in zip(unique, outcomes):
        if isinstance(outcome, BaseException):
            visual_comparisons_total.labels(outcome="error").inc()
            logger.warning(f"[visual] Comparison failed for {url[:80]}: {outcome}")
            continue
        visual_comparisons_total.labels(outcome="ok").inc()
        matches[url] = outcome
    return matches


def apply_visual_results(
    results: Iterable[UnifiedSearchResult],
    matches: Mapping[str, VisualMatchResult],
) -> List[UnifiedSearchResult]:
    updated: List[UnifiedSearchResult] = []
    for result in results:
        match = matches.get(result.thumbnail) if result.thumbnail else None
        if match is None:
            updated.append(result)
            continue
        updated.append(
            result.model_copy(
                update={
                    "visually_verified": True,
                    "visual_match": match.visual_match,
                    "same_image": match.same_image,
                    "same_style": match.same_style,
                    "visual_explanation": match.explanation,
                }
            )
        )
    return updated


def filter_by_visual_threshold(
    results: Iterable[UnifiedSearchResult], threshold: float
) -> List[UnifiedSearchResult]:
    """Drop verified results scoring under ``threshold``; unverified ones always stay."""
    if threshold <= 0:
        return list(results)
    return [r for r in results if not r.visually_verified or (r.visual_match or 0) >= threshold]


def is_confirmed_match(result: VisualMatchResult) -> bool:
    return result.same_image or result.visual_match >= CONFIRMED_MATCH_SCORE


def is_likely_match(result: VisualMatchResult) -> bool:
    return result.visual_match >= LIKELY_MATCH_SCORE


def match_label(result: VisualMatchResult) -> str:
    if is_confirmed_match(result):
        return "Same poster confirmed"
    if is_likely_match(result):
        return "Likely same poster"
    if result.visual_match >= 40 or result.same_style:
        return "Same artist, different work"
    if result.visual_match >= 20:
        return "Possibly related"
    return "Different/unrelated"


def summarize_verification(results: Iterable[UnifiedSearchResult]) -> VisualVerificationSummary:
    verified = [r for r in results if r.visually_verified]
    return VisualVerificationSummary(
        enabled=True,
        results_verified=len(verified),
        confirmed_matches=sum(1 for r in verified if r.same_image),
        high_match_count=sum(1 for r in verified if (r.visual_match or 0) >= LIKELY_MATCH_SCORE),
    )

"""Post-hoc content filter over provider-supplied result labels."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple

from models.core_models import VariationResult

logger = logging.getLogger(__name__)

# Phrases providers put in descriptions when they refuse or sanitise output
DEFAULT_BANNED_TERMS: Tuple[str, ...] = (
    "content policy",
    "cannot fulfill",
    "can't fulfill",
    "inappropriate",
    "prohibited content",
    "sensitive content",
    "unable to generate",
    "i can't",
    "i cannot",
    "violates",
    "blocked",
    "nsfw",
    "explicit",
    "nudity",
)


@dataclass
class FilterReport:
    """Partition of a result list into kept and rejected results."""
    kept: List[VariationResult] = field(default_factory=list)
    rejected: List[VariationResult] = field(default_factory=list)

    @property
    def all_filtered(self) -> bool:
        """True when results came back but none survived the filter."""
        return bool(self.rejected) and not self.kept


def build_term_table(extra_terms: Iterable[str] = ()) -> Tuple[str, ...]:
    """Default banned terms plus configured extras, lowercased and deduplicated."""
    terms = []
    for term in (*DEFAULT_BANNED_TERMS, *extra_terms):
        normalized = term.strip().lower()
        if normalized and normalized not in terms:
            terms.append(normalized)
    return tuple(terms)


def _matches(text: str, banned_terms: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(term.lower() in lowered for term in banned_terms if term)


def filter_results(results: Sequence[VariationResult],
                   banned_terms: Sequence[str] = DEFAULT_BANNED_TERMS) -> FilterReport:
    """Split results by whether their labels contain a banned term.

    Matching is a case-insensitive substring test against the description,
    angle and pose of each result.

    Args:
        results: Results to screen
        banned_terms: Term table

    Returns:
        FilterReport with kept results in their original order
    """
    report = FilterReport()
    for result in results:
        if _matches(result.label_text(), banned_terms):
            report.rejected.append(result)
        else:
            report.kept.append(result)

    if report.rejected:
        logger.info(f"Content filter removed {len(report.rejected)} of {len(results)} result(s)")
    return report

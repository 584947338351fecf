"""
Aggregation Errors
==================
Per-respondent failures are recovered by the batch runner; batch-level
failures stop the run before anything is published.
"""

from typing import Optional


class AggregationError(Exception):
    """Base class for aggregation failures."""


# =============================================================================
# PER-RESPONDENT (non-fatal)
# =============================================================================

class RespondentError(AggregationError):
    """A single respondent could not contribute to the aggregate."""

    def __init__(self, respondent_id: str, reason: str):
        super().__init__(f"Respondent {respondent_id}: {reason}")
        self.respondent_id = respondent_id
        self.reason = reason


class RetrievalError(RespondentError):
    """Catalog or sample-data fetch failed."""


class ResolutionError(RespondentError):
    """The requested sensor channel matched zero or several sample streams."""

    def __init__(self, respondent_id: str, reason: str, matches: Optional[int] = None):
        super().__init__(respondent_id, reason)
        self.matches = matches


class NormalizationError(RespondentError):
    """Too little usable data survived trimming, or timestamps were unusable."""


# =============================================================================
# BATCH-LEVEL (stop the run, nothing published)
# =============================================================================

class EligibilityError(AggregationError):
    """Too few respondents are eligible for aggregation."""

    def __init__(self, eligible: int, required: int):
        super().__init__(
            f"Only {eligible} eligible respondent(s) for this stimulus and segment; "
            f"at least {required} are needed to aggregate"
        )
        self.eligible = eligible
        self.required = required


class EmptyAggregateError(AggregationError):
    """No aggregated rows were produced."""

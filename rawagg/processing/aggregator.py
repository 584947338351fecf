"""
Cross-Respondent Aggregation
============================
Merges the resampled series of all respondents into one table of
per-channel means plus a Falloff column counting contributing respondents.
"""

import logging
from typing import List, Sequence

import pandas as pd

from rawagg.processing.errors import EligibilityError, EmptyAggregateError
from rawagg.processing.normalizer import TIMESTAMP
from rawagg.processing.resampler import RESPONDENT_ID

logger = logging.getLogger(__name__)

FALLOFF = "Falloff"


def eligible_respondents(
    respondents: Sequence[dict],
    segment_members: Sequence[str],
    min_respondents: int = 2,
) -> List[dict]:
    """
    Respondents of the stimulus who are members of the segment, in the
    stimulus listing order.

    Raises:
        EligibilityError: fewer than min_respondents remain
    """
    members = {str(m) for m in segment_members}
    eligible = [r for r in respondents if str(r["id"]) in members]

    if len(eligible) < min_respondents:
        raise EligibilityError(eligible=len(eligible), required=min_respondents)
    return eligible


class CrossRespondentAggregator:
    """
    Averages channels across respondents at each grid timestamp.

    Missing contributions are ignored; a cell is missing only when every
    respondent is missing there. Channels missing across the whole aggregate
    are dropped.
    """

    def aggregate(self, resampled: Sequence[pd.DataFrame]) -> pd.DataFrame:
        """
        Args:
            resampled: One DataFrame per respondent (TimeStamp, RespondentId, channels)

        Returns:
            DataFrame sorted by TimeStamp with channel means and Falloff

        Raises:
            EmptyAggregateError: no rows to aggregate
        """
        frames = [frame for frame in resampled if not frame.empty]
        if not frames:
            raise EmptyAggregateError("No aggregated rows were produced for this stimulus")

        combined = pd.concat(frames, ignore_index=True, sort=False)
        channels = [c for c in combined.columns if c not in (TIMESTAMP, RESPONDENT_ID)]

        grouped = combined.groupby(TIMESTAMP, sort=True)
        means = grouped[channels].mean() if channels else pd.DataFrame(index=grouped.size().index)
        falloff = grouped[RESPONDENT_ID].nunique().rename(FALLOFF)

        aggregate = means.join(falloff).reset_index()
        aggregate[FALLOFF] = aggregate[FALLOFF].astype(int)

        empty = [c for c in channels if aggregate[c].isna().all()]
        if empty:
            logger.info("Dropping %d channel(s) with no data: %s", len(empty), ", ".join(empty))
            aggregate = aggregate.drop(columns=empty)

        return aggregate.sort_values(TIMESTAMP, kind="stable").reset_index(drop=True)


def split_artifacts(aggregate: pd.DataFrame):
    """
    Split an aggregate into the two published tables.

    Returns:
        Tuple of (raw data without Falloff, TimeStamp + Falloff)
    """
    return aggregate.drop(columns=[FALLOFF]), aggregate[[TIMESTAMP, FALLOFF]].copy()

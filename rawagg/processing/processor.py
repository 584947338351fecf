"""
Aggregation Pipeline Orchestrator
=================================
Orchestrates one run: eligibility → normalize → fix rate → resample →
aggregate → post-process → publish.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from rawagg.config import AggregationConfig, get_config
from rawagg.processing.aggregator import (
    CrossRespondentAggregator,
    eligible_respondents,
    split_artifacts,
)
from rawagg.processing.errors import (
    AggregationError,
    EligibilityError,
    EmptyAggregateError,
    NormalizationError,
    RespondentError,
)
from rawagg.processing.normalizer import NormalizedSeries, RespondentNormalizer
from rawagg.processing.postprocess import select_post_processor
from rawagg.processing.rate import AggregationContext
from rawagg.processing.resampler import Resampler
from rawagg.processing.sensors import (
    SensorIdentity,
    falloff_label,
    raw_data_label,
    resolve_artifact_name,
)

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    """Outcome of one aggregation run."""
    study_id: str
    stimulus_id: str
    segment_id: str
    sensor_key: str

    eligible: List[str] = field(default_factory=list)
    used: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    rate_hz: Optional[int] = None
    post_processor: Optional[str] = None

    # Published artifacts
    raw_data: Optional[pd.DataFrame] = field(default=None, repr=False)
    falloff: Optional[pd.DataFrame] = field(default=None, repr=False)
    raw_data_label: str = ""
    falloff_label: str = ""

    published: bool = False
    published_labels: List[str] = field(default_factory=list)
    warning: Optional[str] = None
    processing_time_ms: float = 0.0

    def to_summary_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly run summary."""
        return {
            'study_id': self.study_id,
            'stimulus_id': self.stimulus_id,
            'segment_id': self.segment_id,
            'sensor': self.sensor_key,
            'eligible_respondents': len(self.eligible),
            'used_respondents': len(self.used),
            'failures': dict(self.failures),
            'rate_hz': self.rate_hz,
            'post_processor': self.post_processor,
            'rows': 0 if self.raw_data is None else len(self.raw_data),
            'columns': [] if self.raw_data is None else list(self.raw_data.columns),
            'raw_data_label': self.raw_data_label,
            'falloff_label': self.falloff_label,
            'published': self.published,
            'published_labels': list(self.published_labels),
            'warning': self.warning,
            'processing_time_ms': round(self.processing_time_ms, 1),
        }


NormalizationOutcome = Union[NormalizedSeries, RespondentError]


class StimulusAggregator:
    """
    Runs the aggregation for one stimulus, segment and sensor.

    Pipeline:
    1. Eligibility → respondents of the stimulus within the segment
    2. Normalize → per respondent, failures excluded and logged
    3. Rate → fixed once from the first respondent that normalized
    4. Resample → each respondent onto the canonical grid
    5. Aggregate → channel means and Falloff
    6. Post-process → sensor-family specific columns
    7. Publish → raw data and falloff artifacts, both or neither
    """

    def __init__(self, client, config: Optional[AggregationConfig] = None):
        """
        Args:
            client: Study-data client (StudyDataClient or compatible)
            config: Aggregation settings. Uses global config if not provided.
        """
        if config is None:
            config = get_config().aggregation

        self.client = client
        self.config = config
        self.aggregator = CrossRespondentAggregator()

    def eligible(self, study_id: str, stimulus_id: str, segment_id: str) -> List[dict]:
        """Respondents exposed to the stimulus who belong to the segment."""
        respondents = self.client.list_stimulus_respondents(study_id, stimulus_id)

        members: List[str] = []
        for segment in self.client.list_segments(study_id):
            if str(segment.get("id")) == str(segment_id):
                members = [str(m) for m in segment.get("respondents", [])]
                break
        else:
            logger.warning("Segment %s not found in study %s", segment_id, study_id)

        return eligible_respondents(respondents, members, self.config.min_respondents)

    def _normalize_one(self, normalizer: RespondentNormalizer, respondent: dict) -> NormalizationOutcome:
        try:
            return normalizer.normalize(str(respondent["id"]))
        except RespondentError as e:
            logger.warning(
                "Skipping respondent %s (%s): %s",
                respondent.get("label", respondent["id"]), type(e).__name__, e.reason,
            )
            return e

    def normalize_all(
        self,
        normalizer: RespondentNormalizer,
        respondents: List[dict],
    ) -> List[NormalizationOutcome]:
        """Normalize every respondent, in listing order."""
        if self.config.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
                return list(pool.map(lambda r: self._normalize_one(normalizer, r), respondents))
        return [self._normalize_one(normalizer, r) for r in respondents]

    def fix_rate(
        self,
        context: AggregationContext,
        outcomes: List[NormalizationOutcome],
    ) -> List[NormalizationOutcome]:
        """
        Fix the canonical rate from the first successfully normalized
        respondent. A candidate whose rate cannot be estimated is excluded
        and the next one is tried.
        """
        checked: List[NormalizationOutcome] = []
        for outcome in outcomes:
            if context.is_fixed or isinstance(outcome, RespondentError):
                checked.append(outcome)
                continue

            try:
                rate = context.fix_rate(outcome)
            except ValueError as e:
                error = NormalizationError(outcome.respondent_id, f"cannot estimate sample rate: {e}")
                logger.warning("Skipping respondent %s: %s", outcome.respondent_id, error.reason)
                checked.append(error)
                continue

            logger.info("Canonical sample rate fixed at %d Hz from respondent %s", rate, outcome.respondent_id)
            checked.append(outcome)
        return checked

    def run(
        self,
        study_id: str,
        stimulus_id: str,
        segment_id: str,
        sensor_key: str,
        publish: bool = True,
    ) -> AggregationResult:
        """
        Aggregate one stimulus for one segment and sensor.

        Args:
            study_id: Study identifier
            stimulus_id: Stimulus identifier
            segment_id: Segment identifier
            sensor_key: Composite "Family||Name||Instance" sensor key
            publish: Upload the artifacts; False for a dry run

        Returns:
            AggregationResult; `warning` is set when the run stopped early

        Raises:
            ValueError: malformed sensor key
            StudyDataError: metadata lookup or publishing failed
        """
        start_time = datetime.now()
        identity = SensorIdentity.parse(sensor_key)
        result = AggregationResult(
            study_id=study_id,
            stimulus_id=stimulus_id,
            segment_id=segment_id,
            sensor_key=sensor_key,
        )

        try:
            self._run(identity, result, publish)
        except (EligibilityError, EmptyAggregateError) as e:
            logger.warning("Aggregation stopped: %s", e)
            result.warning = str(e)

        result.processing_time_ms = (datetime.now() - start_time).total_seconds() * 1000
        return result

    def _run(self, identity: SensorIdentity, result: AggregationResult, publish: bool) -> None:
        # Step 1: Eligibility, before any raw data is fetched
        respondents = self.eligible(result.study_id, result.stimulus_id, result.segment_id)
        result.eligible = [str(r["id"]) for r in respondents]
        logger.info("%d eligible respondents for stimulus %s", len(respondents), result.stimulus_id)

        # Step 2: Normalize
        normalizer = RespondentNormalizer(
            self.client,
            result.study_id,
            result.stimulus_id,
            identity,
            fixed_rate_hz=self.config.fixed_rate_hz,
            fixed_rate_families=self.config.fixed_rate_families,
        )
        outcomes = self.normalize_all(normalizer, respondents)

        # Step 3: Canonical rate
        context = AggregationContext()
        outcomes = self.fix_rate(context, outcomes)

        series = [o for o in outcomes if isinstance(o, NormalizedSeries)]
        result.failures = {o.respondent_id: str(o.reason) for o in outcomes if isinstance(o, RespondentError)}
        result.used = [s.respondent_id for s in series]
        if not context.is_fixed:
            raise EmptyAggregateError("No respondent produced usable data for this sensor")
        result.rate_hz = context.rate_hz

        # Step 4: Resample onto the shared grid, extended to the longest respondent
        duration_ms = max(s.duration_ms for s in series)
        resampler = Resampler(target_hz=context.rate_hz)
        resampled = [resampler.resample(s, duration_ms=duration_ms) for s in series]

        # Step 5: Aggregate
        aggregate = self.aggregator.aggregate(resampled)
        if aggregate.empty:
            raise EmptyAggregateError("Aggregated table has no rows")

        # Step 6: Post-process
        post = select_post_processor(
            identity,
            aggregate.columns,
            eye_tracking_families=self.config.eye_tracking_families,
            facial_expression_families=self.config.facial_expression_families,
        )
        result.post_processor = post.name
        raw_data, falloff = split_artifacts(post.apply(aggregate))

        name = resolve_artifact_name(identity, self.config.external_device_families)
        result.raw_data, result.falloff = raw_data, falloff
        result.raw_data_label = raw_data_label(name)
        result.falloff_label = falloff_label(name)

        # Step 7: Publish
        if publish:
            self.publish(result)

    def publish(self, result: AggregationResult) -> None:
        """Upload both artifacts of a completed run."""
        if result.raw_data is None or result.falloff is None:
            raise AggregationError("Nothing to publish")

        # The service has no delete; a failed second upload leaves the first in place
        for label, data in (
            (result.raw_data_label, result.raw_data),
            (result.falloff_label, result.falloff),
        ):
            try:
                self.client.publish(
                    result.study_id, result.stimulus_id, result.segment_id, label, data
                )
            except Exception:
                if result.published_labels:
                    logger.error(
                        "Publishing %r failed after %s was uploaded",
                        label, ", ".join(repr(uploaded) for uploaded in result.published_labels),
                    )
                raise
            result.published_labels.append(label)
            logger.info("Published %r (%d rows)", label, len(data))
        result.published = True


def aggregate_stimulus(
    client,
    study_id: str,
    stimulus_id: str,
    segment_id: str,
    sensor_key: str,
    publish: bool = True,
    config: Optional[AggregationConfig] = None,
) -> AggregationResult:
    """
    Convenience function to aggregate one stimulus.

    Args:
        client: Study-data client
        study_id: Study identifier
        stimulus_id: Stimulus identifier
        segment_id: Segment identifier
        sensor_key: Composite "Family||Name||Instance" sensor key
        publish: Whether to upload the artifacts
        config: Optional aggregation settings

    Returns:
        AggregationResult
    """
    return StimulusAggregator(client, config=config).run(
        study_id, stimulus_id, segment_id, sensor_key, publish=publish
    )

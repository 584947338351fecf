"""
Processing Module
=================
Cross-respondent aggregation of raw sensor data for a stimulus.

Modules:
- sensors: Sensor key parsing and artifact labels
- normalizer: Trim, fragment re-basing and timestamp repair per respondent
- rate: Canonical sample rate, fixed once per run
- resampler: Nearest-sample resampling onto the canonical grid
- aggregator: Channel means and Falloff across respondents
- postprocess: Sensor-family specific column handling
- processor: Pipeline orchestration
"""

from rawagg.processing.sensors import (
    SensorIdentity,
    resolve_artifact_name
)

from rawagg.processing.errors import (
    AggregationError,
    RespondentError,
    RetrievalError,
    ResolutionError,
    NormalizationError,
    EligibilityError,
    EmptyAggregateError
)

from rawagg.processing.normalizer import (
    NormalizedSeries,
    RespondentNormalizer,
    concatenate_fragments
)

from rawagg.processing.rate import (
    RateEstimator,
    AggregationContext
)

from rawagg.processing.resampler import (
    Resampler
)

from rawagg.processing.aggregator import (
    CrossRespondentAggregator,
    eligible_respondents
)

from rawagg.processing.postprocess import (
    SensorPostProcessor,
    select_post_processor
)

from rawagg.processing.processor import (
    StimulusAggregator,
    AggregationResult,
    aggregate_stimulus
)

__all__ = [
    # Sensors
    'SensorIdentity',
    'resolve_artifact_name',

    # Errors
    'AggregationError',
    'RespondentError',
    'RetrievalError',
    'ResolutionError',
    'NormalizationError',
    'EligibilityError',
    'EmptyAggregateError',

    # Normalizer
    'NormalizedSeries',
    'RespondentNormalizer',
    'concatenate_fragments',

    # Rate
    'RateEstimator',
    'AggregationContext',

    # Resampler
    'Resampler',

    # Aggregator
    'CrossRespondentAggregator',
    'eligible_respondents',

    # Post-processing
    'SensorPostProcessor',
    'select_post_processor',

    # Processor
    'StimulusAggregator',
    'AggregationResult',
    'aggregate_stimulus',
]

"""
Aggregations Router
===================
Endpoint that runs a cross-respondent aggregation on demand.
"""

from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from rawagg.api.schemas import AggregationRequest, AggregationResponse
from rawagg.processing.processor import StimulusAggregator
from rawagg.studydata.client import StudyDataClient, StudyDataError


router = APIRouter()


def get_client_factory() -> Callable[[str], StudyDataClient]:
    """Builds a study-data client for a session token."""
    return lambda token: StudyDataClient(token=token)


@router.post("", response_model=AggregationResponse)
def run_aggregation(
    request: AggregationRequest,
    client_factory: Callable[[str], StudyDataClient] = Depends(get_client_factory),
):
    """
    Aggregate a stimulus for a segment and sensor.

    Batch-level warnings (too few respondents, empty aggregate) are reported
    in the response with published = false.
    """
    with client_factory(request.token) as client:
        try:
            result = StimulusAggregator(client).run(
                request.study_id,
                request.stimulus_id,
                request.segment_id,
                request.sensor_name,
                publish=not request.dry_run,
            )
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except StudyDataError as e:
            raise HTTPException(status_code=502, detail=str(e))

    return AggregationResponse(**result.to_summary_dict())

"""
Pydantic Schemas for API
========================
Request and response models for FastAPI endpoints.
"""

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field


# =============================================================================
# Base Models
# =============================================================================

class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime
    version: str


# =============================================================================
# Aggregation Models
# =============================================================================

class AggregationRequest(BaseModel):
    token: str = Field(..., description="Session token for the study-data service")
    study_id: str
    stimulus_id: str
    segment_id: str
    sensor_name: str = Field(
        ...,
        description="Composite sensor key 'Family||Name||Instance' (instance optional)",
        examples=["Eyetracker||ET||Tobii Pro Glasses 3"],
    )
    dry_run: bool = False


class AggregationResponse(BaseModel):
    study_id: str
    stimulus_id: str
    segment_id: str
    sensor: str
    eligible_respondents: int
    used_respondents: int
    failures: Dict[str, str] = Field(default_factory=dict)
    rate_hz: Optional[int] = None
    post_processor: Optional[str] = None
    rows: int = 0
    columns: List[str] = Field(default_factory=list)
    raw_data_label: str = ""
    falloff_label: str = ""
    published: bool = False
    published_labels: List[str] = Field(default_factory=list)
    warning: Optional[str] = None
    processing_time_ms: float = 0.0

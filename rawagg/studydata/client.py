"""
Study Data Service Client
=========================
Synchronous REST client for the remote study-data service: respondent and
segment listings, per-respondent sample catalogs and sample rows, and the
write path used to publish aggregated artifacts.
"""

from typing import Any, Dict, List, Optional

import httpx
import pandas as pd

from rawagg.config import StudyDataConfig, get_config


class StudyDataError(Exception):
    """Transport failure or non-2xx response from the study-data service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StudyDataClient:
    """Client for the study-data REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        config: Optional[StudyDataConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            token: Session token for this run. Falls back to the configured token.
            config: Service configuration. Uses global config if not provided.
            transport: Optional httpx transport (used by tests)
        """
        if config is None:
            config = get_config().studydata

        self.config = config
        self.token = token or config.api_token
        self._client = httpx.Client(
            base_url=config.base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
            },
            timeout=config.timeout_sec,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "StudyDataClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Issue a request and return the decoded JSON body."""
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StudyDataError(
                f"{method} {path} failed with HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise StudyDataError(f"{method} {path} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise StudyDataError(f"{method} {path} returned a body that is not JSON") from e

    # =========================================================================
    # READ PATH
    # =========================================================================

    def list_stimulus_respondents(self, study_id: str, stimulus_id: str) -> List[Dict[str, Any]]:
        """List respondents exposed to a stimulus, in listing order ({id, label})."""
        return self._request("GET", f"/studies/{study_id}/stimuli/{stimulus_id}/respondents")

    def list_segments(self, study_id: str) -> List[Dict[str, Any]]:
        """List segments of a study, each with its member respondent ids."""
        return self._request("GET", f"/studies/{study_id}/segments")

    def list_respondent_samples(
        self,
        study_id: str,
        stimulus_id: str,
        respondent_id: str,
    ) -> List[Dict[str, Any]]:
        """List the sample streams ({id, name, instance}) recorded for a respondent."""
        return self._request(
            "GET",
            f"/studies/{study_id}/stimuli/{stimulus_id}/respondents/{respondent_id}/samples",
        )

    def get_sample_data(
        self,
        study_id: str,
        stimulus_id: str,
        respondent_id: str,
        sample_id: str,
    ) -> pd.DataFrame:
        """
        Fetch the rows of one sample stream.

        Returns:
            DataFrame with a TimeStamp column plus the stream's own columns
        """
        rows = self._request(
            "GET",
            f"/studies/{study_id}/stimuli/{stimulus_id}/respondents/{respondent_id}"
            f"/samples/{sample_id}/data",
        )
        return pd.DataFrame.from_records(rows or [])

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    def publish(
        self,
        study_id: str,
        stimulus_id: str,
        segment_id: str,
        label: str,
        data: pd.DataFrame,
    ) -> None:
        """Upload an aggregated table for a segment under the given label."""
        # NaN is not valid JSON; missing cells go out as null
        records = data.astype(object).where(data.notna(), None).to_dict(orient="records")
        self._request(
            "POST",
            f"/studies/{study_id}/stimuli/{stimulus_id}/segments/{segment_id}/results",
            json={"label": label, "columns": list(data.columns), "data": records},
        )

# Study data service

from rawagg.studydata.client import StudyDataClient, StudyDataError

__all__ = [
    'StudyDataClient',
    'StudyDataError',
]

from .study_record import StudyRecord, ReportStatus
from .study_event import StudyEvent

__all__ = ["StudyRecord", "ReportStatus", "StudyEvent"]

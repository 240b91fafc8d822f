"""
Study history: one StudyEvent per report-status change, plus upload events.
"""
import json
import logging
from typing import Optional

from radreport.extensions import db
from radreport.models import StudyEvent

logger = logging.getLogger(__name__)


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return getattr(status, 'value', status)


def build_event(
    record,
    action: str,
    status_before=None,
    actor_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> StudyEvent:
    """
    Event describing a change just applied to `record`.
    Not committed: the caller adds it to the session of the transition.
    """
    return StudyEvent(
        archive_study_id=record.archive_study_id,
        action=action,
        actor_id=str(actor_id) if actor_id is not None else None,
        status_before=_status_value(status_before),
        status_after=_status_value(record.report_status),
        artifact_id=record.generated_report_artifact_id,
        details=json.dumps(details, default=str) if details else None,
    )


def record_upload(
    archive_study_id: str,
    instance_id: str,
    actor_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> None:
    """Append an upload event for a study; a failed write is logged, not raised."""
    payload = {'instance_id': instance_id}
    payload.update(details or {})
    try:
        db.session.add(StudyEvent(
            archive_study_id=archive_study_id,
            action='instance_uploaded',
            actor_id=str(actor_id) if actor_id is not None else None,
            details=json.dumps(payload, default=str),
        ))
        db.session.commit()
    except Exception as e:
        logger.warning("Study event write failed: %s", e)
        db.session.rollback()

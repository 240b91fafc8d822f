"""
Study Status Service
Persisted report-status state machine, one StudyRecord per archived study.

Every transition is a single read-modify-write committed as one unit. Writers
of the same study are serialized by a per-study lock inside the process and by
the record's version column across processes.
"""
import logging
import threading
import weakref
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy.exc import SQLAlchemyError

from radreport.extensions import db
from radreport.exceptions import NotFound
from radreport.models import StudyRecord, StudyEvent, ReportStatus
from radreport.services.pacs_client import main_tag
from radreport.utils.audit import build_event

logger = logging.getLogger(__name__)

# Entries vanish once no thread holds or waits for the lock
_study_locks = weakref.WeakValueDictionary()
_study_locks_guard = threading.Lock()


@contextmanager
def study_lock(archive_study_id: str):
    """Serialize writers of one study within this process"""
    with _study_locks_guard:
        lock = _study_locks.get(archive_study_id)
        if lock is None:
            lock = threading.RLock()
            _study_locks[archive_study_id] = lock
    with lock:
        yield


def _load_for_update(archive_study_id: str) -> Optional[StudyRecord]:
    # Fresh row from storage, locked where the database supports it
    return (
        StudyRecord.query
        .filter_by(archive_study_id=archive_study_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


def _apply(archive_study_id: str, action: str, mutate,
           actor_id: Optional[str] = None, details: Optional[dict] = None) -> StudyRecord:
    with study_lock(archive_study_id):
        try:
            record = _load_for_update(archive_study_id)
            if record is None:
                raise NotFound(f"Study with archive ID {archive_study_id} not found.")
            status_before = record.report_status
            mutate(record)
            db.session.add(build_event(record, action, status_before, actor_id, details))
            db.session.commit()
        except NotFound:
            db.session.rollback()
            raise
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error applying '{action}' to study {archive_study_id}: {e}", exc_info=True)
            raise

    logger.info(f"Study {archive_study_id}: {action} ({status_before.value} -> {record.report_status.value})")
    return record


def get_by_archive_id(archive_study_id: str) -> Optional[StudyRecord]:
    """Get study record by archive (Orthanc) study id"""
    return StudyRecord.query.filter_by(archive_study_id=archive_study_id).first()


def create_or_update_metadata(
    study: Dict[str, Any],
    patient: Optional[Dict[str, Any]] = None,
    creator_id: Optional[str] = None,
) -> StudyRecord:
    """
    Create the record for an archived study, or refresh its descriptive metadata

    Args:
        study: Orthanc study resource (needs 'ID' and MainDicomTags)
        patient: Orthanc patient resource (optional, falls back to PatientMainDicomTags of the study)
        creator_id: Requester that caused the record to exist (creation only)

    Returns:
        StudyRecord: created or updated record
    """
    archive_study_id = study.get('ID')
    if not archive_study_id:
        raise ValueError("Archive study resource has no 'ID'")

    patient_tags = (patient or {}).get('MainDicomTags') or study.get('PatientMainDicomTags') or {}
    metadata = {
        'study_instance_uid': main_tag(study, 'StudyInstanceUID') or None,
        'study_description': main_tag(study, 'StudyDescription') or None,
        'study_date': main_tag(study, 'StudyDate') or None,
        'patient_id': patient_tags.get('PatientID') or None,
        'patient_name': patient_tags.get('PatientName') or None,
    }

    with study_lock(archive_study_id):
        try:
            record = _load_for_update(archive_study_id)
            if record is None:
                record = StudyRecord(
                    archive_study_id=archive_study_id,
                    report_status=ReportStatus.NO_REPORT,
                    report_generation_attempts=0,
                    creator_id=str(creator_id) if creator_id is not None else None,
                    **metadata
                )
                db.session.add(record)
                db.session.add(build_event(record, 'created', actor_id=creator_id))
                logger.info(f"Created new study record for archive ID: {archive_study_id}")
            else:
                for field, value in metadata.items():
                    setattr(record, field, value)
                db.session.add(build_event(record, 'metadata_refreshed', record.report_status, creator_id))
                logger.info(f"Updated study record for archive ID: {archive_study_id}")
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Error creating or updating study {archive_study_id}: {e}", exc_info=True)
            raise

    return record


def mark_queued(archive_study_id: str, actor_id: Optional[str] = None) -> StudyRecord:
    def mutate(record):
        record.report_status = ReportStatus.QUEUED
        record.report_queued_at = datetime.utcnow()
        record.report_generation_error = None
    return _apply(archive_study_id, 'queued', mutate, actor_id)


def mark_in_progress(archive_study_id: str) -> StudyRecord:
    def mutate(record):
        record.report_status = ReportStatus.IN_PROGRESS
        record.report_generation_error = None
    return _apply(archive_study_id, 'in_progress', mutate)


def mark_generated(archive_study_id: str, artifact_id: str) -> StudyRecord:
    def mutate(record):
        record.report_status = ReportStatus.REPORT_GENERATED
        record.report_generated_at = datetime.utcnow()
        record.generated_report_artifact_id = artifact_id
        record.report_generation_error = None
    return _apply(archive_study_id, 'generated', mutate)


def mark_failed(archive_study_id: str, message: str) -> StudyRecord:
    # No guard: callable from any state
    def mutate(record):
        record.report_status = ReportStatus.FAILED
        record.report_generation_error = message
        record.report_generation_attempts = (record.report_generation_attempts or 0) + 1
    return _apply(archive_study_id, 'failed', mutate, details={'error': message})


def mark_reviewed(archive_study_id: str, artifact_id: str, actor_id: Optional[str] = None) -> StudyRecord:
    details = {}

    def mutate(record):
        details['previous_artifact_id'] = record.generated_report_artifact_id
        record.report_status = ReportStatus.REVIEWED
        record.report_generated_at = datetime.utcnow()
        record.generated_report_artifact_id = artifact_id
        record.report_generation_error = None
    return _apply(archive_study_id, 'reviewed', mutate, actor_id, details)


def assign_doctor(archive_study_id: str, doctor_id: str, actor_id: Optional[str] = None) -> StudyRecord:
    def mutate(record):
        record.assigned_doctor_id = str(doctor_id)
    return _apply(archive_study_id, 'doctor_assigned', mutate, actor_id, {'doctor_id': str(doctor_id)})


def list_events(archive_study_id: str) -> List[StudyEvent]:
    """History of one study, oldest first"""
    return (
        StudyEvent.query
        .filter_by(archive_study_id=archive_study_id)
        .order_by(StudyEvent.created_at.asc(), StudyEvent.id.asc())
        .all()
    )


def list_studies(
    status: Optional[ReportStatus] = None,
    page: int = 1,
    limit: int = 50,
) -> Dict[str, Any]:
    """
    List study records with pagination, newest first

    Args:
        status: Filter by report status
        page: Page number
        limit: Items per page

    Returns:
        dict: Studies and pagination info
    """
    query = StudyRecord.query
    if status is not None:
        query = query.filter_by(report_status=ReportStatus.parse(status))

    query = query.order_by(StudyRecord.created_at.desc(), StudyRecord.id.desc())
    pagination = query.paginate(page=page, per_page=limit, error_out=False)

    return {
        'studies': [record.to_dict() for record in pagination.items],
        'pagination': {
            'page': pagination.page,
            'limit': limit,
            'total': pagination.total,
            'pages': pagination.pages
        }
    }


def list_by_status(status: ReportStatus, page: int = 1, limit: int = 50) -> Dict[str, Any]:
    return list_studies(status=status, page=page, limit=limit)


def list_assigned_to_doctor(doctor_id: str) -> List[StudyRecord]:
    return (
        StudyRecord.query
        .filter_by(assigned_doctor_id=str(doctor_id))
        .order_by(StudyRecord.created_at.desc(), StudyRecord.id.desc())
        .all()
    )

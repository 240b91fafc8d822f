"""
Review Service
Replaces the AI draft with the assigned doctor's findings and impression.
"""
import logging
from typing import Optional

from radreport.exceptions import ApiError, BadRequest, NotFound, Unauthorized
from radreport.models import StudyRecord
from radreport.services import study_status_service
from radreport.services.pacs_client import PacsClient, main_tag
from radreport.utils.sr_utils import encode_structured

logger = logging.getLogger(__name__)


def _clean_text(value, field: str) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise BadRequest(f"'{field}' must be a string")
    return value.strip()


def review_report(
    archive_study_id: str,
    doctor_id: str,
    findings: Optional[str],
    impression: Optional[str],
    pacs: PacsClient,
) -> StudyRecord:
    """
    Store a doctor-reviewed report for a study

    The previous report artifact (AI draft or earlier review) is deleted from
    the PACS on a best-effort basis, the new SR is uploaded and the study moves
    to Reviewed.

    Args:
        archive_study_id: Orthanc study id
        doctor_id: Reviewing doctor; must be the one assigned to the study
        findings: Findings text
        impression: Impression text
        pacs: PACS client

    Returns:
        StudyRecord: updated record

    Raises:
        BadRequest: both texts blank, or a text is not a string
        NotFound: unknown study record, or study/patient missing from the PACS
        Unauthorized: doctor is not assigned to the study
    """
    findings = _clean_text(findings, 'findings')
    impression = _clean_text(impression, 'impression')
    if not findings and not impression:
        raise BadRequest("Findings or impression is required")

    record = study_status_service.get_by_archive_id(archive_study_id)
    if record is None:
        raise NotFound(f"Study with archive ID {archive_study_id} not found.")

    if record.assigned_doctor_id is None or record.assigned_doctor_id != str(doctor_id):
        logger.warning(f"Doctor {doctor_id} attempted to review study {archive_study_id} without assignment")
        raise Unauthorized("You are not assigned to review this study.")

    study = pacs.get_study(archive_study_id)
    if study is None:
        raise NotFound(f"Study {archive_study_id} not found in PACS.")

    parent_patient = study.get('ParentPatient')
    patient = pacs.get_patient(parent_patient) if parent_patient else None
    if patient is None:
        raise NotFound(f"Patient for study {archive_study_id} not found in PACS.")

    previous_artifact_id = record.generated_report_artifact_id
    if previous_artifact_id:
        try:
            pacs.delete_instance(previous_artifact_id)
            logger.info(f"Deleted previous report {previous_artifact_id} for study {archive_study_id}")
        except ApiError as e:
            logger.warning(f"Could not delete previous report {previous_artifact_id}: {e.message}")

    sr_bytes = encode_structured(
        findings,
        impression,
        patient_id=main_tag(patient, 'PatientID'),
        patient_name=main_tag(patient, 'PatientName'),
        study_instance_uid=main_tag(study, 'StudyInstanceUID'),
    )
    artifact_id = pacs.upload_instance(sr_bytes)

    record = study_status_service.mark_reviewed(archive_study_id, artifact_id, actor_id=doctor_id)
    logger.info(f"Study {archive_study_id} reviewed by doctor {doctor_id}: report {artifact_id}")
    return record

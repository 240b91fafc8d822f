"""
Ingest Service
Uploads DICOM files to the PACS, records the study and optionally queues the
new instances for report generation.
"""
import logging
import os
from typing import Optional, List, Tuple, Dict, Any

from radreport.exceptions import ApiError, BadRequest, UpstreamProtocolError
from radreport.services import study_status_service
from radreport.services.enqueue_service import EnqueueCoordinator
from radreport.services.pacs_client import PacsClient, main_tag
from radreport.utils.audit import record_upload

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {'.dcm', '.dicom', '.dic'}


def upload_instance(
    dicom_bytes: bytes,
    pacs: PacsClient,
    requester_id: Optional[str] = None,
    generate_report: bool = False,
    coordinator: Optional[EnqueueCoordinator] = None,
    filename: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Upload one DICOM object and register its study

    Args:
        dicom_bytes: Raw Part-10 file content
        pacs: PACS client
        requester_id: User performing the upload (becomes creator of a new study record)
        generate_report: Queue the uploaded instance for report generation
        coordinator: Required when generate_report is set
        filename: Original file name, for logging only

    Returns:
        dict: Archive ids and descriptive tags of the stored instance
    """
    if not dicom_bytes:
        raise BadRequest("Invalid DICOM file provided.")

    if filename:
        extension = os.path.splitext(filename)[1].lower()
        if extension and extension not in ALLOWED_EXTENSIONS:
            logger.warning(f"File with extension {extension} uploaded, proceeding with upload")

    instance_id = pacs.upload_instance(dicom_bytes)

    instance = pacs.get_instance(instance_id)
    if instance is None:
        raise UpstreamProtocolError("Failed to retrieve uploaded instance details.")

    series = pacs.get_series(instance.get('ParentSeries')) if instance.get('ParentSeries') else None
    if series is None:
        raise UpstreamProtocolError("Failed to retrieve series details for uploaded instance.")

    study = pacs.get_study(series.get('ParentStudy')) if series.get('ParentStudy') else None
    if study is None:
        raise UpstreamProtocolError("Failed to retrieve study details for uploaded instance.")

    patient = pacs.get_patient(study.get('ParentPatient')) if study.get('ParentPatient') else None

    record = study_status_service.create_or_update_metadata(study, patient, creator_id=requester_id)

    queued = False
    if generate_report:
        if coordinator is None:
            raise ValueError("An EnqueueCoordinator is required to queue the uploaded instance")
        coordinator.queue_instance(instance_id)
        queued = True

    record_upload(study['ID'], instance_id, requester_id, {'filename': filename, 'queued': queued})

    patient_tags = (patient or {}).get('MainDicomTags') or study.get('PatientMainDicomTags') or {}
    return {
        'instance_id': instance_id,
        'series_id': series.get('ID'),
        'study_id': study['ID'],
        'patient_id': study.get('ParentPatient'),
        'patient_name': patient_tags.get('PatientName', ''),
        'study_description': main_tag(study, 'StudyDescription'),
        'study_date': main_tag(study, 'StudyDate'),
        'modality': main_tag(series, 'Modality'),
        'report_status': record.report_status.value,
        'queued_for_report': queued,
    }


def bulk_upload(
    files: List[Tuple[str, bytes]],
    pacs: PacsClient,
    requester_id: Optional[str] = None,
    generate_report: bool = False,
    coordinator: Optional[EnqueueCoordinator] = None,
) -> Dict[str, Any]:
    """
    Upload several DICOM files; a failing file is reported and the batch continues

    Args:
        files: (filename, content) pairs

    Returns:
        dict: successful and failed uploads with counts
    """
    logger.info(f"Starting bulk upload of {len(files)} DICOM files (generate_report={generate_report})")

    successful = []
    failed = []
    for filename, content in files:
        try:
            result = upload_instance(
                content, pacs,
                requester_id=requester_id,
                generate_report=generate_report,
                coordinator=coordinator,
                filename=filename,
            )
            result['filename'] = filename
            successful.append(result)
        except ApiError as e:
            logger.error(f"Failed to upload DICOM file {filename}: {e.message}")
            failed.append({'filename': filename, 'error': e.message})

    message = (f"Bulk upload completed: {len(successful)} successful, "
               f"{len(failed)} failed out of {len(files)} files")
    logger.info(message)

    return {
        'successful_uploads': successful,
        'failed_uploads': failed,
        'total_files': len(files),
        'successful_count': len(successful),
        'failed_count': len(failed),
        'message': message,
    }

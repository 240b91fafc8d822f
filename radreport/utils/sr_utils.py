"""
DICOM Structured Report utilities
Builds Basic Text SR objects holding report text for an archived study
"""
import io
import logging
from datetime import datetime
from typing import Optional, List, Tuple

from pydicom import dcmread, dcmwrite
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import generate_uid, ExplicitVRLittleEndian, PYDICOM_IMPLEMENTATION_UID

# Use dedicated DICOM logger for all DICOM-related operations
logger = logging.getLogger("dicom")

BASIC_TEXT_SR_STORAGE = '1.2.840.10008.5.1.4.1.1.88.11'
CT_IMAGE_STORAGE = '1.2.840.10008.5.1.4.1.1.2'

# (CodeValue, CodingSchemeDesignator, CodeMeaning)
DOCUMENT_TITLE = ('18748-4', 'LN', 'Diagnostic imaging report')
FINDINGS_CONCEPT = ('121070', 'DCM', 'Findings')
IMPRESSION_CONCEPT = ('121072', 'DCM', 'Impression')

REPORT_SERIES_NUMBER = 999


def _code_item(concept: Tuple[str, str, str]) -> Dataset:
    code_value, scheme, meaning = concept
    item = Dataset()
    item.CodeValue = code_value
    item.CodingSchemeDesignator = scheme
    item.CodeMeaning = meaning
    return item


def _text_item(concept: Tuple[str, str, str], text: str) -> Dataset:
    item = Dataset()
    item.RelationshipType = 'CONTAINS'
    item.ValueType = 'TEXT'
    item.ConceptNameCodeSequence = [_code_item(concept)]
    item.TextValue = text
    return item


def _image_reference_item(sop_instance_uid: str, sop_class_uid: Optional[str]) -> Dataset:
    reference = Dataset()
    reference.ReferencedSOPClassUID = sop_class_uid or CT_IMAGE_STORAGE
    reference.ReferencedSOPInstanceUID = sop_instance_uid

    item = Dataset()
    # Basic Text SR allows CONTAINER -> IMAGE only as CONTAINS; SELECTED FROM needs an SCOORD source
    item.RelationshipType = 'CONTAINS'
    item.ValueType = 'IMAGE'
    item.ReferencedSOPSequence = [reference]
    return item


def _base_dataset(
    series_description: str,
    patient_id: str,
    patient_name: str,
    study_instance_uid: str,
) -> Dataset:
    """
    SR envelope shared by every report object.
    Fresh SOP Instance and Series UIDs, all dates stamped with the current time.
    """
    now = datetime.now()
    date_str = now.strftime('%Y%m%d')
    time_str = now.strftime('%H%M%S')

    sop_instance_uid = generate_uid()

    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = BASIC_TEXT_SR_STORAGE
    file_meta.MediaStorageSOPInstanceUID = sop_instance_uid
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian
    file_meta.ImplementationClassUID = PYDICOM_IMPLEMENTATION_UID

    ds = Dataset()
    ds.file_meta = file_meta
    ds.SpecificCharacterSet = 'ISO_IR 192'

    # SOP Common
    ds.SOPClassUID = BASIC_TEXT_SR_STORAGE
    ds.SOPInstanceUID = sop_instance_uid
    ds.InstanceCreationDate = date_str
    ds.InstanceCreationTime = time_str

    # Patient
    ds.PatientID = patient_id or ''
    ds.PatientName = patient_name or ''
    ds.PatientBirthDate = ''
    ds.PatientSex = ''

    # Study - reuse the source study so the archive files the report under it
    ds.StudyInstanceUID = study_instance_uid or generate_uid()
    ds.StudyDate = date_str
    ds.StudyTime = time_str
    ds.StudyID = 'AI_REPORT'
    ds.AccessionNumber = ''
    ds.ReferringPhysicianName = ''

    # Series
    ds.SeriesInstanceUID = generate_uid()
    ds.SeriesNumber = REPORT_SERIES_NUMBER
    ds.SeriesDate = date_str
    ds.SeriesTime = time_str
    ds.Modality = 'SR'
    ds.SeriesDescription = series_description
    ds.Manufacturer = ''

    # SR Document General
    ds.InstanceNumber = 1
    ds.ContentDate = date_str
    ds.ContentTime = time_str
    ds.CompletionFlag = 'COMPLETE'
    ds.VerificationFlag = 'UNVERIFIED'
    ds.ReferencedPerformedProcedureStepSequence = []
    ds.PerformedProcedureCodeSequence = []

    # SR Document Content - root container
    ds.ValueType = 'CONTAINER'
    ds.ContinuityOfContent = 'SEPARATE'
    ds.ConceptNameCodeSequence = [_code_item(DOCUMENT_TITLE)]
    return ds


def _to_bytes(ds: Dataset) -> bytes:
    buffer = io.BytesIO()
    dcmwrite(buffer, ds, enforce_file_format=True)
    return buffer.getvalue()


def encode_findings(
    text: str,
    patient_id: str = '',
    patient_name: str = '',
    study_instance_uid: str = '',
    referenced_instance_uid: str = '',
    referenced_sop_class_uid: Optional[str] = None,
) -> bytes:
    """
    Build an SR carrying one free-text Findings item

    Args:
        text: Complete report text, stored verbatim
        patient_id: Patient ID of the source study
        patient_name: Patient name of the source study
        study_instance_uid: Study Instance UID the report belongs to
        referenced_instance_uid: SOP Instance UID of the analysed image (optional)
        referenced_sop_class_uid: SOP Class of the analysed image (CT Image Storage if unknown)

    Returns:
        DICOM Part-10 bytes
    """
    ds = _base_dataset('AI Generated Report', patient_id, patient_name, study_instance_uid)
    ds.TemplateIdentifier = '2000'
    ds.MappingResource = 'DCMR'

    content = [_text_item(FINDINGS_CONCEPT, text)]
    if referenced_instance_uid:
        content.append(_image_reference_item(referenced_instance_uid, referenced_sop_class_uid))
    ds.ContentSequence = content

    logger.debug(f"Encoded findings SR {ds.SOPInstanceUID} for study {ds.StudyInstanceUID}")
    return _to_bytes(ds)


def encode_structured(
    findings: str,
    impression: str,
    patient_id: str = '',
    patient_name: str = '',
    study_instance_uid: str = '',
) -> bytes:
    """
    Build an SR with separate Findings and Impression items.
    Empty sections are left out.
    """
    ds = _base_dataset('AI Generated Structured Report', patient_id, patient_name, study_instance_uid)

    content = []
    if findings:
        content.append(_text_item(FINDINGS_CONCEPT, findings))
    if impression:
        content.append(_text_item(IMPRESSION_CONCEPT, impression))
    ds.ContentSequence = content

    logger.debug(f"Encoded structured SR {ds.SOPInstanceUID} for study {ds.StudyInstanceUID}")
    return _to_bytes(ds)


def read_text_items(data: bytes) -> List[Tuple[str, str]]:
    """
    Decode the TEXT content items of an SR

    Returns:
        List of (concept meaning, text) in document order
    """
    ds = dcmread(io.BytesIO(data))
    items = []
    for item in getattr(ds, 'ContentSequence', []):
        if getattr(item, 'ValueType', None) != 'TEXT':
            continue
        meaning = ''
        if getattr(item, 'ConceptNameCodeSequence', None):
            meaning = str(item.ConceptNameCodeSequence[0].CodeMeaning)
        items.append((meaning, str(item.TextValue)))
    return items


def read_sop_class_uid(data: bytes) -> Optional[str]:
    """SOP Class UID of a DICOM object, or None if it cannot be parsed"""
    try:
        ds = dcmread(io.BytesIO(data), stop_before_pixels=True, force=True)
    except Exception as e:
        logger.warning(f"Could not parse DICOM header: {e}")
        return None

    sop_class_uid = getattr(ds, 'SOPClassUID', None)
    if not sop_class_uid and getattr(ds, 'file_meta', None) is not None:
        sop_class_uid = getattr(ds.file_meta, 'MediaStorageSOPClassUID', None)
    return str(sop_class_uid) if sop_class_uid else None

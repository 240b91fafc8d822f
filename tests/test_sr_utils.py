import io

from pydicom import dcmread
from pydicom.uid import ExplicitVRLittleEndian

from radreport.utils.sr_utils import (
    BASIC_TEXT_SR_STORAGE,
    CT_IMAGE_STORAGE,
    REPORT_SERIES_NUMBER,
    encode_findings,
    encode_structured,
    read_sop_class_uid,
    read_text_items,
)


def _read(data):
    return dcmread(io.BytesIO(data))


def test_findings_sr_envelope():
    data = encode_findings('Findings:\nclear lungs', patient_id='P001', patient_name='Doe^Jane',
                           study_instance_uid='1.2.3.4')
    ds = _read(data)

    assert data[128:132] == b'DICM'
    assert ds.file_meta.TransferSyntaxUID == ExplicitVRLittleEndian
    assert ds.SOPClassUID == BASIC_TEXT_SR_STORAGE
    assert ds.Modality == 'SR'
    assert ds.SeriesNumber == REPORT_SERIES_NUMBER
    assert ds.StudyInstanceUID == '1.2.3.4'
    assert ds.PatientID == 'P001'
    assert str(ds.PatientName) == 'Doe^Jane'
    assert ds.CompletionFlag == 'COMPLETE'
    assert ds.VerificationFlag == 'UNVERIFIED'
    assert ds.ConceptNameCodeSequence[0].CodeValue == '18748-4'
    assert ds.ContentDate == ds.StudyDate == ds.SeriesDate == ds.InstanceCreationDate


def test_findings_text_is_verbatim_and_image_reference_optional():
    text = "Findings:\nA\n\nImpressions:\nB"

    without_ref = _read(encode_findings(text))
    assert len(without_ref.ContentSequence) == 1
    assert without_ref.ContentSequence[0].ConceptNameCodeSequence[0].CodeValue == '121070'
    assert without_ref.ContentSequence[0].TextValue == text

    with_ref = _read(encode_findings(text, referenced_instance_uid='1.2.3.4.5'))
    image_item = with_ref.ContentSequence[1]
    assert image_item.ValueType == 'IMAGE'
    assert image_item.RelationshipType == 'CONTAINS'
    assert image_item.ReferencedSOPSequence[0].ReferencedSOPInstanceUID == '1.2.3.4.5'
    assert image_item.ReferencedSOPSequence[0].ReferencedSOPClassUID == CT_IMAGE_STORAGE



def test_every_root_child_is_contained_by_document():
    ds = _read(encode_findings("Findings:\nA", referenced_instance_uid='1.2.3.4.5'))

    assert ds.ValueType == 'CONTAINER'
    assert [(item.RelationshipType, item.ValueType) for item in ds.ContentSequence] == [
        ('CONTAINS', 'TEXT'),
        ('CONTAINS', 'IMAGE'),
    ]

def test_fresh_uids_per_document():
    first = _read(encode_findings('x', study_instance_uid='1.2.3'))
    second = _read(encode_findings('x', study_instance_uid='1.2.3'))

    assert first.SOPInstanceUID != second.SOPInstanceUID
    assert first.SeriesInstanceUID != second.SeriesInstanceUID
    assert first.StudyInstanceUID == second.StudyInstanceUID


def test_missing_study_uid_is_generated():
    ds = _read(encode_findings('x'))
    assert ds.StudyInstanceUID


def test_structured_sections():
    items = read_text_items(encode_structured('A', 'B', study_instance_uid='1.2.3'))
    assert items == [('Findings', 'A'), ('Impression', 'B')]


def test_structured_omits_empty_section():
    assert read_text_items(encode_structured('', 'B')) == [('Impression', 'B')]
    assert read_text_items(encode_structured('A', '')) == [('Findings', 'A')]


def test_non_ascii_text_round_trips():
    text = 'Résumé: opacité basale droite'
    assert read_text_items(encode_findings(text)) == [('Findings', text)]


def test_read_sop_class_uid():
    assert read_sop_class_uid(encode_findings('x')) == BASIC_TEXT_SR_STORAGE
    assert read_sop_class_uid(b'not a dicom file') is None

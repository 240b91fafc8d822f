import json

import pytest

from radreport.exceptions import BadRequest
from radreport.models import StudyEvent, ReportStatus
from radreport.services import bulk_upload, upload_instance
from radreport.services import study_status_service as store

from tests.conftest import make_image_bytes


class ArchivingPacs:
    """Wraps the in-memory PACS so uploads land in an existing study"""

    def __init__(self, pacs, study_id):
        self._pacs = pacs
        self._study_id = study_id
        self._count = 0

    def __getattr__(self, name):
        return getattr(self._pacs, name)

    def upload_instance(self, dicom_bytes):
        if not dicom_bytes:
            raise BadRequest("Invalid DICOM data provided.")
        self._count += 1
        instance_id = f"{self._study_id}-upload-{self._count}"
        series_id = self._pacs.studies[self._study_id]['Series'][0]
        self._pacs.instances[instance_id] = {
            'ID': instance_id,
            'ParentSeries': series_id,
            'MainDicomTags': {'SOPInstanceUID': f'1.2.3.{self._count}'},
        }
        self._pacs.files[instance_id] = dicom_bytes
        self._pacs.series[series_id]['Instances'].append(instance_id)
        return instance_id


@pytest.fixture
def archive(pacs):
    pacs.add_study('study-1', instance_count=0)
    return ArchivingPacs(pacs, 'study-1')


def _dicom():
    return make_image_bytes('1.2.3.99', '1.2.3')


def test_upload_registers_study(archive, queue):
    result = upload_instance(_dicom(), archive, requester_id='tech-1', filename='scan.dcm')

    assert result['instance_id'] == 'study-1-upload-1'
    assert result['study_id'] == 'study-1'
    assert result['modality'] == 'CT'
    assert result['queued_for_report'] is False
    assert len(queue) == 0

    record = store.get_by_archive_id('study-1')
    assert record.creator_id == 'tech-1'
    assert record.report_status == ReportStatus.NO_REPORT
    upload = StudyEvent.query.filter_by(archive_study_id='study-1', action='instance_uploaded').one()
    assert upload.actor_id == 'tech-1'
    assert upload.changed_status is False
    assert json.loads(upload.details) == {'instance_id': 'study-1-upload-1', 'filename': 'scan.dcm', 'queued': False}


def test_upload_with_report_generation_queues_instance(archive, coordinator, queue):
    result = upload_instance(_dicom(), archive, generate_report=True, coordinator=coordinator)

    assert result['queued_for_report'] is True
    assert queue.snapshot() == [result['instance_id']]


def test_upload_rejects_empty_payload(archive):
    with pytest.raises(BadRequest):
        upload_instance(b'', archive)


def test_bulk_upload_continues_after_bad_file(archive, coordinator, queue):
    result = bulk_upload(
        [('a.dcm', _dicom()), ('empty.dcm', b''), ('b.dcm', _dicom())],
        archive,
        requester_id='tech-1',
        generate_report=True,
        coordinator=coordinator,
    )

    assert result['total_files'] == 3
    assert result['successful_count'] == 2
    assert result['failed_count'] == 1
    assert result['failed_uploads'][0]['filename'] == 'empty.dcm'
    assert [u['filename'] for u in result['successful_uploads']] == ['a.dcm', 'b.dcm']
    assert len(queue) == 2

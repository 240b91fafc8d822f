"""
Shared fixtures: application on in-memory SQLite, in-memory PACS and inference fakes
"""
import io
import itertools

import pytest
from flask_jwt_extended import create_access_token
from pydicom import dcmwrite
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import generate_uid, ExplicitVRLittleEndian

from radreport import create_app
from radreport.exceptions import BadRequest, NotFound, UpstreamUnavailable
from radreport.extensions import db
from radreport.services import (
    EnqueueCoordinator,
    InferenceResult,
    ReportWorker,
    WorkQueue,
)

CT_IMAGE_STORAGE = '1.2.840.10008.5.1.4.1.1.2'
MR_IMAGE_STORAGE = '1.2.840.10008.5.1.4.1.1.4'


def make_image_bytes(sop_instance_uid, study_instance_uid, sop_class_uid=CT_IMAGE_STORAGE):
    """Small Part-10 image header, enough for SOP Class detection"""
    file_meta = FileMetaDataset()
    file_meta.MediaStorageSOPClassUID = sop_class_uid
    file_meta.MediaStorageSOPInstanceUID = sop_instance_uid
    file_meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = Dataset()
    ds.file_meta = file_meta
    ds.SOPClassUID = sop_class_uid
    ds.SOPInstanceUID = sop_instance_uid
    ds.StudyInstanceUID = study_instance_uid
    ds.SeriesInstanceUID = generate_uid()
    ds.PatientID = 'P001'
    ds.PatientName = 'Doe^Jane'
    ds.Modality = 'CT'

    buffer = io.BytesIO()
    dcmwrite(buffer, ds, enforce_file_format=True)
    return buffer.getvalue()


class FakePacs:
    """In-memory stand-in for PacsClient with the same method surface"""

    def __init__(self):
        self.patients = {}
        self.studies = {}
        self.series = {}
        self.instances = {}
        self.files = {}
        self.uploaded = {}
        self.deleted = []
        self.fail_download = False
        self.fail_delete = False
        self._ids = itertools.count(1)

    def add_study(self, study_id, instance_count=2, sop_class_uid=CT_IMAGE_STORAGE,
                  patient_id='orthanc-patient-1'):
        """Register patient -> study -> one series -> N instances"""
        study_uid = generate_uid()
        series_id = f"{study_id}-series-1"
        self.patients.setdefault(patient_id, {
            'ID': patient_id,
            'MainDicomTags': {'PatientID': 'P001', 'PatientName': 'Doe^Jane'},
            'Studies': [],
        })['Studies'].append(study_id)
        self.studies[study_id] = {
            'ID': study_id,
            'ParentPatient': patient_id,
            'MainDicomTags': {
                'StudyInstanceUID': study_uid,
                'StudyDescription': 'CT CHEST',
                'StudyDate': '20260101',
            },
            'PatientMainDicomTags': {'PatientID': 'P001', 'PatientName': 'Doe^Jane'},
            'Series': [series_id],
        }
        self.series[series_id] = {
            'ID': series_id,
            'ParentStudy': study_id,
            'MainDicomTags': {'Modality': 'CT'},
            'Instances': [],
        }
        instance_ids = []
        for n in range(1, instance_count + 1):
            instance_id = f"{study_id}-instance-{n}"
            sop_uid = generate_uid()
            self.instances[instance_id] = {
                'ID': instance_id,
                'ParentSeries': series_id,
                'MainDicomTags': {'SOPInstanceUID': sop_uid},
            }
            self.files[instance_id] = make_image_bytes(sop_uid, study_uid, sop_class_uid)
            self.series[series_id]['Instances'].append(instance_id)
            instance_ids.append(instance_id)
        return instance_ids

    def get_patient(self, patient_id):
        return self.patients.get(patient_id)

    def get_study(self, study_id):
        return self.studies.get(study_id)

    def get_series(self, series_id):
        return self.series.get(series_id)

    def get_instance(self, instance_id):
        return self.instances.get(instance_id)

    def list_study_instance_ids(self, study_id):
        if study_id not in self.studies:
            raise NotFound(f"Study {study_id} not found in Orthanc server")
        ids = []
        for series_id in self.studies[study_id]['Series']:
            ids.extend(self.series[series_id]['Instances'])
        return ids

    def get_instance_file(self, instance_id):
        if self.fail_download:
            raise UpstreamUnavailable("Unable to connect to Orthanc server.")
        if instance_id not in self.files:
            raise NotFound(f"Instance {instance_id} not found in Orthanc server")
        return self.files[instance_id]

    def upload_instance(self, dicom_bytes):
        if not dicom_bytes:
            raise BadRequest("Invalid DICOM data provided.")
        instance_id = f"uploaded-{next(self._ids)}"
        self.uploaded[instance_id] = dicom_bytes
        return instance_id

    def delete_instance(self, instance_id):
        if self.fail_delete:
            raise UpstreamUnavailable("Unable to connect to Orthanc server.")
        if instance_id not in self.uploaded and instance_id not in self.instances:
            raise NotFound(f"Instance {instance_id} not found in Orthanc server")
        self.uploaded.pop(instance_id, None)
        self.deleted.append(instance_id)

    def is_available(self):
        return True


class FakeInference:
    """Returns a fixed draft, or raises to simulate an endpoint failure"""

    def __init__(self, findings='No acute abnormality.', impression='Normal study.'):
        self.findings = findings
        self.impression = impression
        self.error = None
        self.calls = []
        self.on_call = None

    def generate_report(self, dicom_bytes, filename='image.dcm'):
        self.calls.append(dicom_bytes)
        if self.on_call is not None:
            self.on_call()
        if self.error is not None:
            raise self.error
        return InferenceResult(findings=self.findings, impression=self.impression)


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def pacs(app):
    fake = FakePacs()
    app.extensions['pacs_client'] = fake
    app.extensions['report_worker'].pacs = fake
    return fake


@pytest.fixture
def inference(app):
    fake = FakeInference()
    app.extensions['inference_client'] = fake
    app.extensions['report_worker'].inference = fake
    return fake


@pytest.fixture
def queue(app):
    return app.extensions['report_queue']


@pytest.fixture
def coordinator(pacs, queue):
    return EnqueueCoordinator(pacs, queue)


@pytest.fixture
def worker(app, queue, pacs, inference):
    return app.extensions['report_worker']


@pytest.fixture
def standalone_worker(app, pacs, inference):
    """Worker with its own queue, not bound to the app's extensions"""
    return ReportWorker(app, WorkQueue(), pacs, inference, poll_interval=0.01)


@pytest.fixture
def auth_headers(app):
    def _headers(user_id='admin-1', role='admin'):
        token = create_access_token(identity=str(user_id), additional_claims={'role': role})
        return {'Authorization': f'Bearer {token}'}
    return _headers

"""
PACS client for the Orthanc REST API
Resolves the patient -> study -> series -> instance hierarchy, downloads and
uploads DICOM objects. Lookups return None for unknown ids; transport and
protocol failures raise UpstreamUnavailable / UpstreamProtocolError.
"""
import logging
from typing import Optional, Dict, Any, List

import requests

from radreport.exceptions import (
    BadRequest, NotFound, UpstreamUnavailable, UpstreamProtocolError
)

logger = logging.getLogger(__name__)


def main_tag(resource: Optional[Dict[str, Any]], name: str, default: str = '') -> str:
    """Read one entry of an Orthanc resource's MainDicomTags"""
    if not resource:
        return default
    value = (resource.get('MainDicomTags') or {}).get(name)
    return value if value is not None else default


class PacsClient:
    """Thin wrapper around the Orthanc REST endpoints used by the report pipeline"""

    def __init__(self, base_url: str, username: Optional[str] = None, password: Optional[str] = None,
                 timeout: float = 30, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        if username and password:
            self.session.auth = (username, password)

    @classmethod
    def from_config(cls, config) -> 'PacsClient':
        return cls(
            base_url=config['ORTHANC_BASE_URL'],
            username=config.get('ORTHANC_USERNAME'),
            password=config.get('ORTHANC_PASSWORD'),
            timeout=config.get('ORTHANC_TIMEOUT', 30),
        )

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            logger.error(f"Timeout during {method} {path} on Orthanc server")
            raise UpstreamUnavailable("Request to Orthanc server timed out.") from e
        except requests.RequestException as e:
            logger.error(f"Network error during {method} {path} on Orthanc server: {e}")
            raise UpstreamUnavailable("Unable to connect to Orthanc server. Please check if the server is running.") from e

    @staticmethod
    def _check(response: requests.Response, action: str) -> None:
        if response.status_code >= 500:
            logger.error(f"Orthanc failed to {action}. Status: {response.status_code}")
            raise UpstreamUnavailable(f"Failed to {action} on Orthanc server. Status: {response.status_code}")
        if not response.ok:
            logger.error(f"Orthanc rejected request to {action}. Status: {response.status_code}, Error: {response.text}")
            raise UpstreamProtocolError(f"Failed to {action} on Orthanc server. Status: {response.status_code}")

    @staticmethod
    def _json(response: requests.Response, action: str):
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamProtocolError(f"Invalid JSON from Orthanc while trying to {action}.") from e

    def _get_resource(self, kind: str, resource_id: str) -> Optional[Dict[str, Any]]:
        label = kind[:-1]
        logger.info(f"Fetching {label} {resource_id} from Orthanc server")
        response = self._request('GET', f"/{kind}/{resource_id}")

        if response.status_code == 404:
            logger.warning(f"{label.capitalize()} {resource_id} not found in Orthanc server")
            return None

        self._check(response, f"fetch {label} {resource_id}")
        data = self._json(response, f"fetch {label} {resource_id}")
        if not isinstance(data, dict):
            raise UpstreamProtocolError(f"Unexpected {label} payload from Orthanc for {resource_id}.")
        return data

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_patient(self, patient_id: str) -> Optional[Dict[str, Any]]:
        return self._get_resource('patients', patient_id)

    def get_study(self, study_id: str) -> Optional[Dict[str, Any]]:
        return self._get_resource('studies', study_id)

    def get_series(self, series_id: str) -> Optional[Dict[str, Any]]:
        return self._get_resource('series', series_id)

    def get_instance(self, instance_id: str) -> Optional[Dict[str, Any]]:
        return self._get_resource('instances', instance_id)

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------

    def list_patient_study_ids(self, patient_id: str) -> List[str]:
        patient = self.get_patient(patient_id)
        if patient is None:
            raise NotFound(f"Patient {patient_id} not found in Orthanc server")
        return list(patient.get('Studies') or [])

    def list_study_series_ids(self, study_id: str) -> List[str]:
        study = self.get_study(study_id)
        if study is None:
            raise NotFound(f"Study {study_id} not found in Orthanc server")
        return list(study.get('Series') or [])

    def list_series_instance_ids(self, series_id: str) -> List[str]:
        series = self.get_series(series_id)
        if series is None:
            raise NotFound(f"Series {series_id} not found in Orthanc server")
        return list(series.get('Instances') or [])

    def list_study_instance_ids(self, study_id: str) -> List[str]:
        """Every instance of a study, series by series"""
        instance_ids = []
        for series_id in self.list_study_series_ids(study_id):
            instance_ids.extend(self.list_series_instance_ids(series_id))
        return instance_ids

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def get_instance_file(self, instance_id: str) -> bytes:
        logger.info(f"Downloading DICOM file for instance {instance_id}")
        response = self._request('GET', f"/instances/{instance_id}/file")
        if response.status_code == 404:
            raise NotFound(f"Instance {instance_id} not found in Orthanc server")
        self._check(response, f"download instance {instance_id}")
        return response.content

    def upload_instance(self, dicom_bytes: bytes) -> str:
        """Store a DICOM object; returns the new Orthanc instance id"""
        if not dicom_bytes:
            raise BadRequest("Invalid DICOM data provided.")

        logger.info(f"Uploading DICOM object to Orthanc server ({len(dicom_bytes)} bytes)")
        response = self._request(
            'POST', '/instances',
            data=dicom_bytes,
            headers={'Content-Type': 'application/dicom'},
        )
        self._check(response, "upload DICOM object")

        payload = self._json(response, "upload DICOM object")
        instance_id = payload.get('ID') if isinstance(payload, dict) else None
        if not instance_id:
            raise UpstreamProtocolError("Invalid response from Orthanc: Missing 'ID' field.")

        logger.info(f"DICOM object uploaded successfully. Instance ID: {instance_id}")
        return instance_id

    def delete_instance(self, instance_id: str) -> None:
        logger.info(f"Deleting instance {instance_id} from Orthanc server")
        response = self._request('DELETE', f"/instances/{instance_id}")
        if response.status_code == 404:
            logger.warning(f"Instance {instance_id} not found in Orthanc server")
            raise NotFound(f"Instance {instance_id} not found in Orthanc server")
        self._check(response, f"delete instance {instance_id}")
        logger.info(f"Successfully deleted instance {instance_id} from Orthanc server")

    def is_available(self) -> bool:
        try:
            response = self._request('GET', '/system')
        except UpstreamUnavailable:
            return False
        return response.ok

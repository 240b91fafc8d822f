"""
Client for the AI report-inference endpoint
Sends one DICOM object as multipart form data and returns the draft
findings/impression text.
"""
import logging
from typing import Optional, Dict, Any

import requests

from radreport.exceptions import UpstreamUnavailable, UpstreamProtocolError

logger = logging.getLogger(__name__)


class InferenceResult:
    """Draft report text returned by the model; either part may be empty"""

    def __init__(self, findings: str = '', impression: str = '', raw: Optional[Dict[str, Any]] = None):
        self.findings = findings or ''
        self.impression = impression or ''
        self.raw = raw or {}

    @property
    def is_empty(self) -> bool:
        return not self.findings and not self.impression

    def __repr__(self):
        return f"<InferenceResult findings={len(self.findings)} chars impression={len(self.impression)} chars>"


class InferenceClient:

    def __init__(self, endpoint_url: str, timeout: float = 120, report_key: str = 'generated_report',
                 session: Optional[requests.Session] = None):
        self.endpoint_url = endpoint_url
        self.timeout = timeout
        self.report_key = report_key
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> 'InferenceClient':
        return cls(
            endpoint_url=config['INFERENCE_ENDPOINT_URL'],
            timeout=config.get('INFERENCE_TIMEOUT', 120),
            report_key=config.get('INFERENCE_REPORT_KEY', 'generated_report'),
        )

    def generate_report(self, dicom_bytes: bytes, filename: str = 'image.dcm') -> InferenceResult:
        """
        Run inference on one DICOM object

        Raises:
            UpstreamUnavailable: transport error, timeout or non-2xx response
            UpstreamProtocolError: body is not the expected JSON object
        """
        files = {'file': (filename, dicom_bytes, 'application/dicom')}
        try:
            response = self.session.post(self.endpoint_url, files=files, timeout=self.timeout)
        except requests.Timeout as e:
            raise UpstreamUnavailable("Request to inference endpoint timed out.") from e
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"Unable to reach inference endpoint: {e}") from e

        if not response.ok:
            raise UpstreamUnavailable(f"Inference endpoint returned status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamProtocolError("Inference endpoint returned malformed JSON.") from e

        logger.info(f"Received response from inference endpoint: {payload}")
        return self.parse_response(payload)

    def parse_response(self, payload) -> InferenceResult:
        if not isinstance(payload, dict):
            raise UpstreamProtocolError("Inference response is not a JSON object.")

        report = payload.get(self.report_key)
        if report is None:
            logger.warning(f"Inference response has no '{self.report_key}' object")
            return InferenceResult(raw=payload)
        if not isinstance(report, dict):
            raise UpstreamProtocolError(f"Inference response field '{self.report_key}' is not an object.")

        findings = report.get('findings')
        impression = report.get('impression')
        for name, value in (('findings', findings), ('impression', impression)):
            if value is not None and not isinstance(value, str):
                raise UpstreamProtocolError(f"Inference response field '{name}' is not a string.")

        return InferenceResult(findings=findings, impression=impression, raw=payload)

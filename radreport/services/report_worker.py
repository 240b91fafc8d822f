"""
Report Worker
Single background consumer of the report work queue. For each instance id it
resolves the archive hierarchy, runs inference on the instance, encodes the
draft as a Basic Text SR and stores it back in the PACS.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Optional, Dict, Any, Tuple

from flask import has_app_context
from sqlalchemy.exc import SQLAlchemyError

from radreport.extensions import db
from radreport.exceptions import ApiError, NotFound
from radreport.services import study_status_service
from radreport.services.inference_client import InferenceClient, InferenceResult
from radreport.services.pacs_client import PacsClient, main_tag
from radreport.services.work_queue import WorkQueue
from radreport.utils.sr_utils import encode_findings, read_sop_class_uid, CT_IMAGE_STORAGE

logger = logging.getLogger(__name__)

NO_REPORT_TEXT = "No report generated."

GENERATED = 'generated'
FAILED = 'failed'
DROPPED = 'dropped'


def compose_report_text(result: Optional[InferenceResult]) -> str:
    """Join the draft sections that came back, verbatim; sentinel text when none did"""
    sections = []
    if result is not None and result.findings:
        sections.append(f"Findings:\n{result.findings}")
    if result is not None and result.impression:
        sections.append(f"Impressions:\n{result.impression}")
    return "\n\n".join(sections) or NO_REPORT_TEXT


class ReportWorker:

    def __init__(self, app, queue: WorkQueue, pacs: PacsClient, inference: InferenceClient,
                 poll_interval: float = 1.0):
        self.app = app
        self.queue = queue
        self.pacs = pacs
        self.inference = inference
        self.poll_interval = poll_interval

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._counters = {GENERATED: 0, FAILED: 0, DROPPED: 0}
        self._counters_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Thread management
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the consumer thread; returns False if it is already running"""
        if self.is_running:
            logger.warning("Report worker is already running")
            return False

        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self.run, args=(self._stop_event,), daemon=True, name="Report-Worker"
        )
        self._thread.start()
        logger.info("Report worker thread started")
        return True

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the loop to exit; an item already in flight is finished first"""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Report worker did not stop within timeout")
        logger.info("Report worker stopped")

    def run(self, stop: Optional[threading.Event] = None) -> None:
        stop = stop or self._stop_event
        logger.info(f"Report worker loop running (poll interval {self.poll_interval}s)")
        while not stop.is_set():
            item = self.queue.try_dequeue()
            if item is None:
                stop.wait(self.poll_interval)
                continue
            self.process_item(item)
        logger.info("Report worker loop exited")

    def run_once(self) -> bool:
        """Process at most one queued item; returns True if one was processed"""
        item = self.queue.try_dequeue()
        if item is None:
            return False
        self.process_item(item)
        return True

    def drain(self) -> int:
        """Process items until the queue is empty; returns how many were processed"""
        count = 0
        while self.run_once():
            count += 1
        return count

    def status(self) -> Dict[str, Any]:
        with self._counters_lock:
            counters = dict(self._counters)
        return {
            'running': self.is_running and not self._stop_event.is_set(),
            'thread_alive': self._thread.is_alive() if self._thread else False,
            'queue_size': len(self.queue),
            'poll_interval': self.poll_interval,
            'processed': sum(counters.values()),
            'generated': counters[GENERATED],
            'failed': counters[FAILED],
            'dropped': counters[DROPPED],
        }

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    @contextmanager
    def _app_context(self):
        if has_app_context():
            yield
        else:
            with self.app.app_context():
                yield

    def _count(self, outcome: str) -> str:
        with self._counters_lock:
            self._counters[outcome] += 1
        return outcome

    def process_item(self, instance_id: str) -> str:
        """
        Run the report pipeline for one instance

        Returns:
            str: 'generated', 'failed' or 'dropped'
        """
        try:
            with self._app_context():
                return self._count(self._process(instance_id))
        except Exception as e:
            logger.error(f"Unexpected error while processing instance {instance_id}: {e}", exc_info=True)
            return self._count(FAILED)

    def _resolve(self, instance_id: str) -> Tuple[dict, dict, dict, dict]:
        instance = self.pacs.get_instance(instance_id)
        if instance is None:
            raise NotFound(f"Instance {instance_id} not found in PACS")

        series_id = instance.get('ParentSeries')
        series = self.pacs.get_series(series_id) if series_id else None
        if series is None:
            raise NotFound(f"Series for instance {instance_id} not found in PACS")

        study_id = series.get('ParentStudy')
        study = self.pacs.get_study(study_id) if study_id else None
        if study is None:
            raise NotFound(f"Study for series {series_id} not found in PACS")

        patient_id = study.get('ParentPatient')
        patient = self.pacs.get_patient(patient_id) if patient_id else None
        if patient is None:
            raise NotFound(f"Patient for study {study_id} not found in PACS")

        return instance, series, study, patient

    def _process(self, instance_id: str) -> str:
        logger.info(f"Processing instance {instance_id}")

        try:
            instance, series, study, patient = self._resolve(instance_id)
        except ApiError as e:
            logger.warning(f"Dropping instance {instance_id}: {e.message}")
            return DROPPED

        archive_study_id = study['ID']
        patient_tags = patient.get('MainDicomTags') or study.get('PatientMainDicomTags') or {}

        try:
            if study_status_service.get_by_archive_id(archive_study_id) is None:
                study_status_service.create_or_update_metadata(study, patient)
            study_status_service.mark_in_progress(archive_study_id)
        except (ApiError, SQLAlchemyError) as e:
            logger.error(f"Could not mark study {archive_study_id} in progress: {e}")

        try:
            dicom_bytes = self.pacs.get_instance_file(instance_id)
            result = self.inference.generate_report(dicom_bytes)
            report_text = compose_report_text(result)

            sr_bytes = encode_findings(
                report_text,
                patient_id=patient_tags.get('PatientID', ''),
                patient_name=patient_tags.get('PatientName', ''),
                study_instance_uid=main_tag(study, 'StudyInstanceUID'),
                referenced_instance_uid=main_tag(instance, 'SOPInstanceUID'),
                referenced_sop_class_uid=read_sop_class_uid(dicom_bytes) or CT_IMAGE_STORAGE,
            )
            artifact_id = self.pacs.upload_instance(sr_bytes)
            study_status_service.mark_generated(archive_study_id, artifact_id)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            logger.error(f"Report generation failed for instance {instance_id} (study {archive_study_id}): {message}",
                         exc_info=not isinstance(e, ApiError))
            self._record_failure(archive_study_id, message)
            return FAILED

        logger.info(f"Generated report {artifact_id} for instance {instance_id} (study {archive_study_id})")
        return GENERATED

    def _record_failure(self, archive_study_id: str, message: str) -> None:
        db.session.rollback()
        try:
            study_status_service.mark_failed(archive_study_id, message)
        except Exception as e:
            logger.error(f"Could not mark study {archive_study_id} as failed: {e}", exc_info=True)

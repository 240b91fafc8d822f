from flask import current_app

from .work_queue import WorkQueue
from .pacs_client import PacsClient, main_tag
from .inference_client import InferenceClient, InferenceResult
from .enqueue_service import EnqueueCoordinator
from .report_worker import ReportWorker, compose_report_text, NO_REPORT_TEXT
from .review_service import review_report
from .ingest_service import upload_instance, bulk_upload
from . import study_status_service


def get_work_queue() -> WorkQueue:
    return current_app.extensions['report_queue']


def get_pacs_client() -> PacsClient:
    return current_app.extensions['pacs_client']


def get_inference_client() -> InferenceClient:
    return current_app.extensions['inference_client']


def get_report_worker() -> ReportWorker:
    return current_app.extensions['report_worker']


def get_enqueue_coordinator() -> EnqueueCoordinator:
    return EnqueueCoordinator(get_pacs_client(), get_work_queue())


__all__ = [
    # Collaborators
    "WorkQueue",
    "PacsClient",
    "main_tag",
    "InferenceClient",
    "InferenceResult",
    # Report pipeline
    "EnqueueCoordinator",
    "ReportWorker",
    "compose_report_text",
    "NO_REPORT_TEXT",
    "review_report",
    "upload_instance",
    "bulk_upload",
    "study_status_service",
    # App-bound accessors
    "get_work_queue",
    "get_pacs_client",
    "get_inference_client",
    "get_report_worker",
    "get_enqueue_coordinator",
]

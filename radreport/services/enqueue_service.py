"""
Enqueue Coordinator
Entry points that turn a study or an instance into report work items.
"""
import logging
from typing import Optional, Tuple

from radreport.exceptions import NotFound
from radreport.models import StudyRecord, ReportStatus
from radreport.services import study_status_service
from radreport.services.pacs_client import PacsClient
from radreport.services.work_queue import WorkQueue

logger = logging.getLogger(__name__)


class EnqueueCoordinator:

    def __init__(self, pacs: PacsClient, queue: WorkQueue):
        self.pacs = pacs
        self.queue = queue

    def queue_study(self, archive_study_id: str,
                    requester_id: Optional[str] = None) -> Tuple[StudyRecord, int, bool]:
        """
        Queue every instance of a study for report generation

        A study that is already Queued is left alone and nothing is enqueued.
        Any other state (including a finished report) moves to Queued.

        Returns:
            tuple: (StudyRecord, number of instance ids added to the queue,
                    True when the study was already Queued and nothing changed)
        """
        study = self.pacs.get_study(archive_study_id)
        if study is None:
            raise NotFound(f"Study with archive ID {archive_study_id} not found in PACS.")

        record = study_status_service.get_by_archive_id(archive_study_id)
        if record is None:
            patient = None
            parent_patient = study.get('ParentPatient')
            if parent_patient:
                patient = self.pacs.get_patient(parent_patient)
            record = study_status_service.create_or_update_metadata(study, patient, creator_id=requester_id)

        if record.report_status == ReportStatus.QUEUED:
            logger.info(f"Study {archive_study_id} is already queued for report generation")
            return record, 0, True

        if record.report_status in (ReportStatus.REPORT_GENERATED, ReportStatus.REVIEWED):
            logger.info(f"Re-queueing study {archive_study_id} from {record.report_status.value}")

        record = study_status_service.mark_queued(archive_study_id, actor_id=requester_id)

        enqueued = 0
        for instance_id in self.pacs.list_study_instance_ids(archive_study_id):
            if self.queue.enqueue_if_absent(instance_id):
                enqueued += 1

        logger.info(f"Queued {enqueued} instance(s) of study {archive_study_id} for report generation")
        return record, enqueued, False

    def queue_instance(self, instance_id: str) -> None:
        """Push one instance id; no duplicate check and no status change"""
        self.queue.enqueue(instance_id)
        logger.info(f"Queued instance {instance_id} for report generation")

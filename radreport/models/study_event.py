"""
Study Event Model
History of report-status changes and uploads for one archived study
"""
from radreport.extensions import db
from datetime import datetime


class StudyEvent(db.Model):
    """
    One row per state change of a StudyRecord, written in the same
    transaction as the change. Upload events carry no status change.
    """
    __tablename__ = "study_events"

    id = db.Column(db.Integer, primary_key=True)
    archive_study_id = db.Column(db.String(64), nullable=False, index=True)
    action = db.Column(db.String(32), nullable=False, index=True)  # created, queued, generated, failed, reviewed ...
    actor_id = db.Column(db.String(64), nullable=True, index=True)  # None for the report worker
    status_before = db.Column(db.String(30), nullable=True)
    status_after = db.Column(db.String(30), nullable=True)
    artifact_id = db.Column(db.String(64), nullable=True)  # SR instance current after the change
    details = db.Column(db.Text, nullable=True)  # JSON
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    @property
    def changed_status(self):
        return self.status_before != self.status_after

    def to_dict(self):
        return {
            "id": self.id,
            "archive_study_id": self.archive_study_id,
            "action": self.action,
            "actor_id": self.actor_id,
            "status_before": self.status_before,
            "status_after": self.status_after,
            "artifact_id": self.artifact_id,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

"""
Study Record Model
Tracks the report-generation state of one archived (Orthanc) study
"""
import enum

from radreport.extensions import db
from .base import TimestampMixin


class ReportStatus(str, enum.Enum):
    NO_REPORT = 'NoReport'
    WAITING_FOR_QUEUE = 'WaitingForQueue'
    QUEUED = 'Queued'
    IN_PROGRESS = 'InProgress'
    REPORT_GENERATED = 'ReportGenerated'
    FAILED = 'Failed'
    REVIEWED = 'Reviewed'

    @classmethod
    def parse(cls, value):
        """Accept either the stored value ('ReportGenerated') or the member name ('REPORT_GENERATED')"""
        if isinstance(value, cls):
            return value
        for member in cls:
            if value in (member.value, member.name) or str(value).lower() == member.value.lower():
                return member
        raise ValueError(f"Unknown report status: {value}")


class StudyRecord(db.Model, TimestampMixin):
    """
    One record per archived study known to this system.
    Mutated only through radreport.services.study_status_service.
    """
    __tablename__ = 'study_records'

    id = db.Column(db.Integer, primary_key=True)

    # Archive (Orthanc) study identifier - used for every lookup
    archive_study_id = db.Column(db.String(64), unique=True, nullable=False, index=True)

    # Denormalized DICOM metadata
    study_instance_uid = db.Column(db.String(255), index=True)
    study_description = db.Column(db.String(255))
    study_date = db.Column(db.String(20))  # YYYYMMDD as stored by the archive
    patient_id = db.Column(db.String(64), index=True)
    patient_name = db.Column(db.String(255))

    # Report state machine
    report_status = db.Column(
        db.Enum(
            ReportStatus,
            name='report_status',
            native_enum=False,
            length=30,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=ReportStatus.NO_REPORT,
        nullable=False,
        index=True,
    )
    report_queued_at = db.Column(db.DateTime, nullable=True)
    report_generated_at = db.Column(db.DateTime, nullable=True)
    generated_report_artifact_id = db.Column(db.String(64), nullable=True)
    report_generation_error = db.Column(db.Text, nullable=True)
    report_generation_attempts = db.Column(db.Integer, default=0, nullable=False)

    # Ownership
    creator_id = db.Column(db.String(64), nullable=True)
    assigned_doctor_id = db.Column(db.String(64), nullable=True, index=True)

    # Optimistic concurrency: stale writes raise StaleDataError
    version = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {'version_id_col': version}

    def __repr__(self):
        return f"<StudyRecord {self.archive_study_id} - {self.report_status.value if self.report_status else None}>"

    def to_dict(self):
        """Convert to dictionary for API responses"""
        return {
            'id': self.id,
            'archive_study_id': self.archive_study_id,
            'study_instance_uid': self.study_instance_uid,
            'study_description': self.study_description,
            'study_date': self.study_date,
            'patient_id': self.patient_id,
            'patient_name': self.patient_name,
            'report_status': self.report_status.value if self.report_status else None,
            'report_queued_at': self.report_queued_at.isoformat() if self.report_queued_at else None,
            'report_generated_at': self.report_generated_at.isoformat() if self.report_generated_at else None,
            'generated_report_artifact_id': self.generated_report_artifact_id,
            'report_generation_error': self.report_generation_error,
            'report_generation_attempts': self.report_generation_attempts,
            'creator_id': self.creator_id,
            'assigned_doctor_id': self.assigned_doctor_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

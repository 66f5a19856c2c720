"""Job run model. Audit log per background task execution."""

from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, Uuid, func
from sqlalchemy.orm import relationship

from kuralis_sync.models.base import Base, JSONType, UUIDMixin
from kuralis_sync.utils import ensure_aware


class JobRun(UUIDMixin, Base):
    __tablename__ = "job_runs"

    job_id = Column(String(255), unique=True, nullable=False, index=True)
    job_class = Column(String(100), nullable=False, index=True)
    shop_id = Column(Uuid(as_uuid=True), ForeignKey("shops.id"), index=True)
    queue = Column(String(50))

    status = Column(String(20), nullable=False, default="queued")  # queued, running, completed, failed
    arguments = Column(JSONType, default=list)
    progress_data = Column(JSONType, default=dict)
    attempt = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    error_message = Column(Text)

    # Relationships
    shop = relationship("Shop", back_populates="job_runs")

    __table_args__ = (
        Index("idx_job_run_checkpoint", "shop_id", "job_class", "status", "completed_at"),
        Index("idx_job_run_status_created", "status", "created_at"),
    )

    @property
    def duration(self) -> float | None:
        if not (self.completed_at and self.started_at):
            return None
        return (ensure_aware(self.completed_at) - ensure_aware(self.started_at)).total_seconds()

    @property
    def queue_time(self) -> float | None:
        if not (self.started_at and self.created_at):
            return None
        return (ensure_aware(self.started_at) - ensure_aware(self.created_at)).total_seconds()

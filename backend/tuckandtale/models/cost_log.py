from sqlalchemy import Column, String, Text, DateTime, ForeignKey, JSON
from ..database import Base
import enum
import uuid


class ProcessingStatus(str, enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ApiCostLog(Base):
    """Audit row for one attempted generation."""
    __tablename__ = "api_cost_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("user_profiles.id"), nullable=False, index=True)
    provider = Column(String(50), nullable=False)
    operation = Column(String(100), nullable=False)
    model_used = Column(String(100))
    character_profile_id = Column(String(36))

    processing_status = Column(String(20), nullable=False, default=ProcessingStatus.PROCESSING.value, index=True)
    generation_params = Column(JSON, default={})
    prompt_used = Column(Text)
    log_metadata = Column("metadata", JSON, default={})

    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    content_id = Column(String(36), nullable=True)
    error_message = Column(Text, nullable=True)

    def __repr__(self):
        return f"<ApiCostLog(id={self.id}, operation='{self.operation}', status='{self.processing_status}')>"

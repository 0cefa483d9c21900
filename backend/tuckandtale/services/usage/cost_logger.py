"""
Cost Logger

One audit row per attempted generation. The row is written as ``processing``
before the upstream call and moves to ``completed`` or ``failed`` exactly once.
Rows left in ``processing`` (client disconnects, crashes) can be listed with
``find_stale``; nothing marks them automatically.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...models import ApiCostLog, ProcessingStatus

logger = logging.getLogger(__name__)

STREAM_OPERATION = "story_generation_v3_stream"
GENERATE_OPERATION = "story_generation_v3"


class CostLogger:
    def __init__(self, db: Session):
        self.db = db

    def start(
        self,
        user_id: str,
        provider: str,
        operation: str,
        model_used: Optional[str] = None,
        character_profile_id: Optional[str] = None,
        generation_params: Optional[Dict[str, Any]] = None,
        prompt_used: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Insert a ``processing`` row and return its id."""
        entry = ApiCostLog(
            user_id=user_id,
            provider=provider,
            operation=operation,
            model_used=model_used,
            character_profile_id=character_profile_id,
            processing_status=ProcessingStatus.PROCESSING.value,
            generation_params=generation_params or {},
            prompt_used=prompt_used,
            log_metadata=metadata or {},
            started_at=datetime.now(timezone.utc),
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info(f"[COST_LOG] Started {operation} entry {entry.id} for user {user_id}")
        return entry.id

    def _get_processing(self, log_id: str) -> Optional[ApiCostLog]:
        entry = self.db.query(ApiCostLog).filter(ApiCostLog.id == log_id).first()
        if entry is None:
            logger.warning(f"[COST_LOG] Entry {log_id} not found")
            return None
        if entry.processing_status != ProcessingStatus.PROCESSING.value:
            logger.warning(f"[COST_LOG] Entry {log_id} already {entry.processing_status}, ignoring transition")
            return None
        return entry

    def complete(self, log_id: str, content_id: str) -> bool:
        """Mark the entry completed. Returns False if it was already terminal."""
        entry = self._get_processing(log_id)
        if entry is None:
            return False
        entry.processing_status = ProcessingStatus.COMPLETED.value
        entry.completed_at = datetime.now(timezone.utc)
        entry.content_id = content_id
        self.db.commit()
        logger.info(f"[COST_LOG] Entry {log_id} completed (content {content_id})")
        return True

    def fail(self, log_id: str, error_message: str) -> bool:
        """Mark the entry failed. Returns False if it was already terminal."""
        entry = self._get_processing(log_id)
        if entry is None:
            return False
        entry.processing_status = ProcessingStatus.FAILED.value
        entry.completed_at = datetime.now(timezone.utc)
        entry.error_message = error_message
        self.db.commit()
        logger.info(f"[COST_LOG] Entry {log_id} failed: {error_message}")
        return True

    def find_stale(self, older_than: timedelta = timedelta(hours=1)) -> List[ApiCostLog]:
        """Entries still ``processing`` that started before ``now - older_than``."""
        cutoff = datetime.now(timezone.utc) - older_than
        return (
            self.db.query(ApiCostLog)
            .filter(
                ApiCostLog.processing_status == ProcessingStatus.PROCESSING.value,
                ApiCostLog.started_at < cutoff,
            )
            .order_by(ApiCostLog.started_at)
            .all()
        )

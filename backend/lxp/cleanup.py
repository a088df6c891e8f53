from __future__ import annotations
import logging
from datetime import datetime, timedelta
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import AuthSession
from .personal_calendar import purge_deleted_events
from .settings import settings
from .usage import purge_usage_older_than


logger = logging.getLogger(__name__)


def purge_idle_sessions(db: Session, days: int) -> int:
	if days <= 0:
		return 0
	threshold = datetime.utcnow() - timedelta(days=days)
	res = db.execute(delete(AuthSession).where(AuthSession.last_activity_at < threshold))
	db.commit()
	return res.rowcount or 0


def purge_stale_rows(db: Session) -> int:
	# Each sweep commits on its own
	removed = 0
	removed += purge_usage_older_than(db, settings.ai_usage_retention_days)
	removed += purge_deleted_events(db, settings.calendar_purge_days)
	removed += purge_idle_sessions(db, settings.session_idle_days)
	logger.info("cleanup removed %d rows", removed)
	return removed

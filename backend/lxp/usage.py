from __future__ import annotations
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .gemini_client import Generation
from .models import AiUsageLog


logger = logging.getLogger(__name__)

MAX_LIST_LIMIT = 1000


def record_usage(
	db: Session,
	user_id: str,
	feature: str,
	model: str,
	*,
	input_tokens: int = 0,
	output_tokens: int = 0,
	generation_time_ms: int = 0,
	metadata: Optional[Dict[str, Any]] = None,
) -> AiUsageLog:
	"""Persist one AI invocation.

	The row is committed immediately. A ``user_id`` with no matching ``User``
	row raises ``IntegrityError`` from the foreign key; the session is rolled
	back before the error propagates.
	"""
	feature = (feature or "").strip()
	if not feature:
		raise ValueError("feature is required")
	if not model:
		raise ValueError("model is required")
	for name, value in (("input_tokens", input_tokens), ("output_tokens", output_tokens), ("generation_time_ms", generation_time_ms)):
		if value < 0:
			raise ValueError(f"{name} must be >= 0")
	row = AiUsageLog(
		user_id=user_id,
		feature=feature,
		model=model,
		input_tokens=int(input_tokens),
		output_tokens=int(output_tokens),
		generation_time=int(generation_time_ms),
		meta=metadata,
	)
	db.add(row)
	try:
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		raise
	db.refresh(row)
	logger.debug("ai usage user=%s feature=%s tokens=%d/%d", user_id, feature, row.input_tokens, row.output_tokens)
	return row


async def track_generation(
	db: Session,
	user_id: str,
	feature: str,
	client,
	prompt: str,
	*,
	metadata: Optional[Dict[str, Any]] = None,
	**generate_kwargs: Any,
) -> Generation:
	"""Run ``client.generate`` and log what it cost.

	Failed generations are not logged; the client's exception propagates.
	"""
	started = time.perf_counter()
	result: Generation = await client.generate(prompt, **generate_kwargs)
	elapsed_ms = int((time.perf_counter() - started) * 1000)
	meta = dict(metadata or {})
	meta.setdefault("provider", result.provider)
	record_usage(
		db,
		user_id,
		feature,
		result.model,
		input_tokens=result.input_tokens,
		output_tokens=result.output_tokens,
		generation_time_ms=elapsed_ms,
		metadata=meta,
	)
	return result


def _filtered(stmt, user_id: Optional[str], feature: Optional[str], since: Optional[datetime], until: Optional[datetime]):
	if user_id is not None:
		stmt = stmt.where(AiUsageLog.user_id == user_id)
	if feature:
		stmt = stmt.where(AiUsageLog.feature == feature)
	if since is not None:
		stmt = stmt.where(AiUsageLog.created_at >= since)
	if until is not None:
		stmt = stmt.where(AiUsageLog.created_at <= until)
	return stmt


def list_usage(
	db: Session,
	*,
	user_id: Optional[str] = None,
	feature: Optional[str] = None,
	since: Optional[datetime] = None,
	until: Optional[datetime] = None,
	descending: bool = True,
	limit: int = 100,
) -> List[AiUsageLog]:
	if since is not None and until is not None and since > until:
		raise ValueError("since must not be after until")
	limit = max(1, min(int(limit), MAX_LIST_LIMIT))
	order = AiUsageLog.created_at.desc() if descending else AiUsageLog.created_at.asc()
	stmt = _filtered(select(AiUsageLog), user_id, feature, since, until)
	# id breaks ties between rows written in the same clock tick
	stmt = stmt.order_by(order, AiUsageLog.id.desc() if descending else AiUsageLog.id.asc()).limit(limit)
	return list(db.scalars(stmt))


def summarize_usage(
	db: Session,
	*,
	user_id: Optional[str] = None,
	since: Optional[datetime] = None,
	until: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
	"""Per-feature totals, busiest feature first."""
	stmt = select(
		AiUsageLog.feature,
		func.count(AiUsageLog.id),
		func.coalesce(func.sum(AiUsageLog.input_tokens), 0),
		func.coalesce(func.sum(AiUsageLog.output_tokens), 0),
		func.avg(AiUsageLog.generation_time),
	)
	stmt = _filtered(stmt, user_id, None, since, until).group_by(AiUsageLog.feature)
	summary = []
	for feature, calls, input_tokens, output_tokens, avg_time in db.execute(stmt):
		summary.append({
			"feature": feature,
			"calls": int(calls),
			"input_tokens": int(input_tokens),
			"output_tokens": int(output_tokens),
			"total_tokens": int(input_tokens) + int(output_tokens),
			"avg_generation_time_ms": round(float(avg_time or 0), 1),
		})
	summary.sort(key=lambda item: (-item["calls"], item["feature"]))
	return summary


def purge_usage_older_than(db: Session, days: int) -> int:
	if days <= 0:
		return 0
	threshold = datetime.utcnow() - timedelta(days=days)
	res = db.execute(delete(AiUsageLog).where(AiUsageLog.created_at < threshold))
	db.commit()
	removed = res.rowcount or 0
	if removed:
		logger.info("purged %d ai usage rows older than %d days", removed, days)
	return removed

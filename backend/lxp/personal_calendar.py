from __future__ import annotations
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from .models import EventStatus, PersonalCalendarEvent, PersonalEventType


logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#1F504B"

EVENT_TYPE_COLORS: Dict[PersonalEventType, str] = {
	PersonalEventType.STUDY_SESSION: "#1F504B",
	PersonalEventType.ASSIGNMENT: "#2563eb",
	PersonalEventType.EXAM_PREP: "#dc2626",
	PersonalEventType.MEETING: "#6b7280",
	PersonalEventType.PERSONAL: "#059669",
	PersonalEventType.REMINDER: "#d97706",
	PersonalEventType.BREAK: "#9ca3af",
}

_UPDATABLE = {"title", "description", "start_date", "end_date", "is_all_day", "type", "color"}


class CalendarError(Exception):
	pass


class EventNotFound(CalendarError, LookupError):
	pass


class InvalidDateRange(CalendarError, ValueError):
	pass


def event_type_color(event_type) -> str:
	try:
		return EVENT_TYPE_COLORS[PersonalEventType(event_type)]
	except (ValueError, KeyError):
		return DEFAULT_COLOR


def _naive_utc(value: datetime) -> datetime:
	# Columns hold naive UTC; offset-aware input is converted before comparing
	if value.tzinfo is not None:
		return value.astimezone(timezone.utc).replace(tzinfo=None)
	return value


def _all_day_span(start: datetime, end: datetime) -> tuple[datetime, datetime]:
	first = datetime.combine(start.date(), time.min)
	last = datetime.combine(end.date(), time.min) + timedelta(days=1) - timedelta(seconds=1)
	return first, last


def _check_range(start: datetime, end: datetime) -> None:
	if start >= end:
		raise InvalidDateRange("End date must be after start date")


def _clean_title(title: Optional[str]) -> str:
	title = (title or "").strip()
	if not title:
		raise ValueError("Title is required")
	return title


def _active(user_id: str):
	return select(PersonalCalendarEvent).where(
		PersonalCalendarEvent.user_id == user_id,
		PersonalCalendarEvent.status == EventStatus.ACTIVE,
	)


def create_event(
	db: Session,
	user_id: str,
	*,
	title: str,
	start_date: datetime,
	end_date: datetime,
	type: PersonalEventType,
	description: Optional[str] = None,
	is_all_day: bool = False,
	color: Optional[str] = None,
) -> PersonalCalendarEvent:
	start_date, end_date = _naive_utc(start_date), _naive_utc(end_date)
	if is_all_day:
		start_date, end_date = _all_day_span(start_date, end_date)
	_check_range(start_date, end_date)
	event_type = PersonalEventType(type)
	event = PersonalCalendarEvent(
		user_id=user_id,
		title=_clean_title(title),
		description=description,
		start_date=start_date,
		end_date=end_date,
		is_all_day=bool(is_all_day),
		type=event_type,
		color=color or event_type_color(event_type),
		status=EventStatus.ACTIVE,
	)
	db.add(event)
	db.commit()
	db.refresh(event)
	return event


def get_event(db: Session, user_id: str, event_id: str) -> PersonalCalendarEvent:
	"""Return an active event owned by ``user_id``.

	Events belonging to someone else are reported exactly like missing ones.
	"""
	event = db.scalars(_active(user_id).where(PersonalCalendarEvent.id == event_id)).first()
	if event is None:
		raise EventNotFound("Event not found")
	return event


def list_events(
	db: Session,
	user_id: str,
	start: datetime,
	end: datetime,
	types: Optional[Iterable[PersonalEventType]] = None,
) -> List[PersonalCalendarEvent]:
	start, end = _naive_utc(start), _naive_utc(end)
	if start > end:
		raise InvalidDateRange("start must not be after end")
	stmt = _active(user_id).where(
		PersonalCalendarEvent.start_date >= start,
		PersonalCalendarEvent.start_date <= end,
	)
	wanted = [PersonalEventType(t) for t in (types or [])]
	if wanted:
		stmt = stmt.where(PersonalCalendarEvent.type.in_(wanted))
	stmt = stmt.order_by(PersonalCalendarEvent.start_date.asc())
	return list(db.scalars(stmt))


def count_events(db: Session, user_id: str, start: datetime, end: datetime) -> int:
	start, end = _naive_utc(start), _naive_utc(end)
	if start > end:
		raise InvalidDateRange("start must not be after end")
	stmt = select(func.count(PersonalCalendarEvent.id)).where(
		PersonalCalendarEvent.user_id == user_id,
		PersonalCalendarEvent.status == EventStatus.ACTIVE,
		PersonalCalendarEvent.start_date >= start,
		PersonalCalendarEvent.start_date <= end,
	)
	return int(db.scalar(stmt) or 0)


def update_event(db: Session, user_id: str, event_id: str, changes: Dict[str, Any]) -> PersonalCalendarEvent:
	event = get_event(db, user_id, event_id)
	unknown = set(changes) - _UPDATABLE
	if unknown:
		raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
	changes = {k: v for k, v in changes.items() if v is not None}
	for key in ("start_date", "end_date"):
		if key in changes:
			changes[key] = _naive_utc(changes[key])
	start = changes.get("start_date", event.start_date)
	end = changes.get("end_date", event.end_date)
	if changes.get("is_all_day", event.is_all_day):
		start, end = _all_day_span(start, end)
		changes["start_date"], changes["end_date"] = start, end
	_check_range(start, end)
	if "title" in changes:
		changes["title"] = _clean_title(changes["title"])
	if "type" in changes:
		changes["type"] = PersonalEventType(changes["type"])
		# Recolour unless the caller picked a colour explicitly
		changes["color"] = changes.get("color") or event_type_color(changes["type"])
	for key, value in changes.items():
		setattr(event, key, value)
	db.add(event)
	db.commit()
	db.refresh(event)
	return event


def delete_event(db: Session, user_id: str, event_id: str) -> PersonalCalendarEvent:
	event = get_event(db, user_id, event_id)
	event.status = EventStatus.DELETED
	db.add(event)
	db.commit()
	db.refresh(event)
	logger.info("soft-deleted calendar event %s for user %s", event_id, user_id)
	return event


def purge_deleted_events(db: Session, days: int) -> int:
	if days <= 0:
		return 0
	threshold = datetime.utcnow() - timedelta(days=days)
	res = db.execute(
		delete(PersonalCalendarEvent).where(
			PersonalCalendarEvent.status == EventStatus.DELETED,
			PersonalCalendarEvent.updated_at < threshold,
		)
	)
	db.commit()
	return res.rowcount or 0

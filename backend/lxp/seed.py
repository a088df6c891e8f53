"""Synthetic personal calendar data for demos and local development.

Usage:
    lxp-seed calendar --username alice
    lxp-seed calendar --username alice --days 30 --seed 7 --clear
"""
from __future__ import annotations
import logging
import random
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterator, List, Optional, Tuple

import typer
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from .db import Base, SessionLocal, engine, ensure_schema
from .models import EventStatus, PersonalCalendarEvent, PersonalEventType, User
from .personal_calendar import event_type_color


logger = logging.getLogger(__name__)

# (title, description) pairs per event type
CATALOGUE: Dict[PersonalEventType, List[Tuple[str, Optional[str]]]] = {
	PersonalEventType.STUDY_SESSION: [
		("Mathematics revision", "Work through algebra practice problems"),
		("Science reading", "Read the chapter on cell structure and take notes"),
		("Vocabulary review", "Review this week's English vocabulary list"),
		("History timeline", "Summarise key events of the industrial revolution"),
	],
	PersonalEventType.ASSIGNMENT: [
		("Essay draft due", "First draft of the persuasive essay"),
		("Lab report", "Write up the results of the titration experiment"),
		("Geography project", "Finish the map annotations for the river study"),
	],
	PersonalEventType.EXAM_PREP: [
		("Mock exam practice", "Timed past paper under exam conditions"),
		("Formula sheet", "Condense physics formulas onto one page"),
		("Flashcard drill", "Go through the biology flashcard deck"),
	],
	PersonalEventType.MEETING: [
		("Study group", "Meet classmates to compare notes"),
		("Teacher office hours", "Ask about feedback on the last quiz"),
		("Project check-in", "Sync with the group on project progress"),
	],
	PersonalEventType.PERSONAL: [
		("Football practice", "Training session at the school field"),
		("Music lesson", "Piano lesson"),
		("Family dinner", None),
	],
	PersonalEventType.REMINDER: [
		("Submit permission slip", "Hand in the field trip form"),
		("Library books due", "Return borrowed books"),
		("Charge tablet", None),
	],
	PersonalEventType.BREAK: [
		("Short break", "Stretch and get some water"),
		("Lunch break", None),
		("Walk outside", "Fresh air before the next session"),
	],
}

# Types that are sometimes all-day rather than timed
_ALL_DAY_TYPES = {PersonalEventType.REMINDER, PersonalEventType.PERSONAL, PersonalEventType.ASSIGNMENT}
_ALL_DAY_PROBABILITY = 0.25


def _day_start(value) -> datetime:
	if isinstance(value, datetime):
		return datetime.combine(value.date(), time.min)
	if isinstance(value, date):
		return datetime.combine(value, time.min)
	raise TypeError(f"expected date or datetime, got {type(value).__name__}")


def generate_events(
	user_id: str,
	start: Optional[date] = None,
	*,
	days: int = 14,
	per_day: Tuple[int, int] = (1, 3),
	rng: Optional[random.Random] = None,
) -> Iterator[PersonalCalendarEvent]:
	"""Yield unsaved events for ``days`` consecutive days from ``start``.

	Timed events start between 08:00 and 19:45 on a quarter hour and last
	30 to 180 minutes. All-day events cover the whole day. ``end_date`` is
	never earlier than ``start_date``.
	"""
	if days < 0:
		raise ValueError("days must be >= 0")
	low, high = per_day
	if low < 0 or high < low:
		raise ValueError("per_day must be a (min, max) pair with 0 <= min <= max")
	rng = rng or random.Random()
	first_day = _day_start(start or datetime.utcnow())
	types = list(CATALOGUE)
	for offset in range(days):
		day = first_day + timedelta(days=offset)
		for _ in range(rng.randint(low, high)):
			event_type = rng.choice(types)
			title, description = rng.choice(CATALOGUE[event_type])
			all_day = event_type in _ALL_DAY_TYPES and rng.random() < _ALL_DAY_PROBABILITY
			if all_day:
				start_at = day
				end_at = day + timedelta(days=1) - timedelta(seconds=1)
			else:
				start_at = day + timedelta(hours=rng.randint(8, 19), minutes=15 * rng.randint(0, 3))
				end_at = start_at + timedelta(minutes=15 * rng.randint(2, 12))
			yield PersonalCalendarEvent(
				user_id=user_id,
				title=title,
				description=description,
				start_date=start_at,
				end_date=end_at,
				is_all_day=all_day,
				type=event_type,
				color=event_type_color(event_type),
				status=EventStatus.ACTIVE,
			)


def clear_personal_calendar(db: Session, user_id: str) -> int:
	res = db.execute(delete(PersonalCalendarEvent).where(PersonalCalendarEvent.user_id == user_id))
	db.commit()
	return res.rowcount or 0


def seed_personal_calendar(
	db: Session,
	user_id: str,
	start: Optional[date] = None,
	*,
	days: int = 14,
	per_day: Tuple[int, int] = (1, 3),
	rng: Optional[random.Random] = None,
) -> int:
	if db.get(User, user_id) is None:
		raise LookupError(f"user {user_id} does not exist")
	events = list(generate_events(user_id, start, days=days, per_day=per_day, rng=rng))
	db.add_all(events)
	db.commit()
	logger.info("seeded %d calendar events for user %s", len(events), user_id)
	return len(events)


cli = typer.Typer(name="lxp-seed", help="Seed development data", no_args_is_help=True)


@cli.callback()
def _main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level")) -> None:
	logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)


@cli.command("calendar")
def calendar_command(
	username: str = typer.Option(..., "--username", "-u", help="Owner of the seeded events"),
	days: int = typer.Option(14, min=1, help="Number of days to fill"),
	start: Optional[datetime] = typer.Option(None, formats=["%Y-%m-%d"], help="First day (default: today)"),
	seed: Optional[int] = typer.Option(None, help="Random seed for reproducible data"),
	clear: bool = typer.Option(False, "--clear", help="Remove the user's existing events first"),
) -> None:
	"""Fill a user's personal calendar with sample events."""
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	db = SessionLocal()
	try:
		user = db.scalars(select(User).where(User.username == username)).first()
		if user is None:
			typer.echo(f"No user named {username!r}", err=True)
			raise typer.Exit(code=1)
		if clear:
			removed = clear_personal_calendar(db, user.id)
			typer.echo(f"Removed {removed} existing events")
		count = seed_personal_calendar(db, user.id, start, days=days, rng=random.Random(seed))
		typer.echo(f"Inserted {count} events for {username}")
	finally:
		db.close()


def run() -> None:
	cli()


if __name__ == "__main__":
	run()

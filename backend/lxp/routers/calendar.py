from __future__ import annotations
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import EventStatus, PersonalEventType
from .. import personal_calendar
from ..personal_calendar import EventNotFound, InvalidDateRange
from .auth import User, get_current_user


router = APIRouter(prefix="/calendar", tags=["calendar"])


class EventCreate(BaseModel):
	title: str = Field(min_length=1)
	description: Optional[str] = None
	start_date: datetime
	end_date: datetime
	is_all_day: bool = False
	type: PersonalEventType
	color: Optional[str] = None


class EventUpdate(BaseModel):
	title: Optional[str] = Field(default=None, min_length=1)
	description: Optional[str] = None
	start_date: Optional[datetime] = None
	end_date: Optional[datetime] = None
	is_all_day: Optional[bool] = None
	type: Optional[PersonalEventType] = None
	color: Optional[str] = None


class EventOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: str
	title: str
	description: Optional[str] = None
	start_date: datetime
	end_date: datetime
	is_all_day: bool
	type: PersonalEventType
	color: str
	status: EventStatus
	created_at: datetime
	updated_at: datetime


class EventCount(BaseModel):
	count: int


def _bad_request(e: Exception) -> HTTPException:
	return HTTPException(status_code=400, detail=str(e))


@router.get("/events", response_model=List[EventOut])
def get_events(
	start: datetime,
	end: datetime,
	types: Optional[List[PersonalEventType]] = Query(None),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	try:
		return personal_calendar.list_events(db, user.id, start, end, types)
	except InvalidDateRange as e:
		raise _bad_request(e)


@router.get("/events/count", response_model=EventCount)
def get_events_count(
	start: datetime,
	end: datetime,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	try:
		return EventCount(count=personal_calendar.count_events(db, user.id, start, end))
	except InvalidDateRange as e:
		raise _bad_request(e)


@router.get("/events/{event_id}", response_model=EventOut)
def get_event(event_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		return personal_calendar.get_event(db, user.id, event_id)
	except EventNotFound:
		raise HTTPException(status_code=404, detail="Event not found")


@router.post("/events", response_model=EventOut, status_code=201)
def create_event(req: EventCreate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		return personal_calendar.create_event(db, user.id, **req.model_dump())
	except ValueError as e:
		raise _bad_request(e)


@router.patch("/events/{event_id}", response_model=EventOut)
def update_event(event_id: str, req: EventUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		return personal_calendar.update_event(db, user.id, event_id, req.model_dump(exclude_unset=True))
	except EventNotFound:
		raise HTTPException(status_code=404, detail="Event not found or you do not have permission to update it")
	except ValueError as e:
		raise _bad_request(e)


@router.delete("/events/{event_id}")
def delete_event(event_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	try:
		event = personal_calendar.delete_event(db, user.id, event_id)
	except EventNotFound:
		raise HTTPException(status_code=404, detail="Event not found or you do not have permission to delete it")
	return {"success": True, "id": event.id}

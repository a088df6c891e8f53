from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from ..db import get_db
from ..usage import MAX_LIST_LIMIT, list_usage, summarize_usage
from .auth import User, get_current_user


router = APIRouter(prefix="/ai-usage", tags=["ai-usage"])


class UsageLogOut(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: str
	feature: str
	model: str
	input_tokens: int
	output_tokens: int
	generation_time: int
	metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="meta")
	created_at: datetime


class FeatureSummary(BaseModel):
	feature: str
	calls: int
	input_tokens: int
	output_tokens: int
	total_tokens: int
	avg_generation_time_ms: float


@router.get("", response_model=List[UsageLogOut])
def my_usage(
	feature: Optional[str] = None,
	since: Optional[datetime] = None,
	until: Optional[datetime] = None,
	order: str = Query("desc", pattern="^(asc|desc)$"),
	limit: int = Query(100, ge=1, le=MAX_LIST_LIMIT),
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	try:
		return list_usage(db, user_id=user.id, feature=feature, since=since, until=until, descending=order == "desc", limit=limit)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))


@router.get("/summary", response_model=List[FeatureSummary])
def my_usage_summary(
	since: Optional[datetime] = None,
	until: Optional[datetime] = None,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
):
	return summarize_usage(db, user_id=user.id, since=since, until=until)

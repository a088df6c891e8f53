from __future__ import annotations
import enum
import uuid
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Enum, ForeignKey, Index, Integer, JSON, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from .db import Base


def new_id() -> str:
	return uuid.uuid4().hex


class PersonalEventType(str, enum.Enum):
	STUDY_SESSION = "STUDY_SESSION"
	ASSIGNMENT = "ASSIGNMENT"
	EXAM_PREP = "EXAM_PREP"
	MEETING = "MEETING"
	PERSONAL = "PERSONAL"
	REMINDER = "REMINDER"
	BREAK = "BREAK"


class EventStatus(str, enum.Enum):
	ACTIVE = "ACTIVE"
	DELETED = "DELETED"


class User(Base):
	__tablename__ = "User"
	id = Column(String(32), primary_key=True, default=new_id)
	username = Column(String(128), unique=True, index=True, nullable=False)
	password_hash = Column("passwordHash", String(256), nullable=False)
	email = Column(String(256), nullable=True)
	phone = Column(String(32), nullable=True)
	# Per-user budget for AI generation requests
	requests_used = Column("requestsUsed", Integer, default=0, nullable=False)
	requests_limit = Column("requestsLimit", Integer, default=1000, nullable=False)
	created_at = Column("createdAt", DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column("updatedAt", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	# Rows are removed by ON DELETE CASCADE; the ORM must not null out the FKs first
	sessions = relationship("AuthSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
	ai_usage_logs = relationship("AiUsageLog", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)
	calendar_events = relationship("PersonalCalendarEvent", back_populates="user", cascade="all, delete-orphan", passive_deletes=True)


class AuthSession(Base):
	__tablename__ = "AuthSession"
	# JWT "jti" claim
	session_id = Column("sessionId", String(64), primary_key=True)
	user_id = Column("userId", String(32), ForeignKey("User.id", ondelete="CASCADE"), nullable=False, index=True)
	created_at = Column("createdAt", DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column("lastActivityAt", DateTime, default=datetime.utcnow, nullable=False)

	user = relationship("User", back_populates="sessions")


class AiUsageLog(Base):
	__tablename__ = "AiUsageLog"
	id = Column(String(32), primary_key=True, default=new_id)
	user_id = Column("userId", String(32), ForeignKey("User.id", ondelete="CASCADE"), nullable=False)
	feature = Column(Text, nullable=False)
	input_tokens = Column("inputTokens", Integer, default=0, nullable=False)
	output_tokens = Column("outputTokens", Integer, default=0, nullable=False)
	model = Column(Text, nullable=False)
	# Milliseconds
	generation_time = Column("generationTime", Integer, default=0, nullable=False)
	# "metadata" is reserved on declarative classes
	meta = Column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True)
	created_at = Column("createdAt", DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column("updatedAt", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		Index("AiUsageLog_userId_idx", user_id),
		Index("AiUsageLog_feature_idx", feature),
		Index("AiUsageLog_createdAt_idx", created_at),
	)

	user = relationship("User", back_populates="ai_usage_logs")

	@property
	def total_tokens(self) -> int:
		return (self.input_tokens or 0) + (self.output_tokens or 0)


class PersonalCalendarEvent(Base):
	__tablename__ = "PersonalCalendarEvent"
	id = Column(String(32), primary_key=True, default=new_id)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	start_date = Column("startDate", DateTime, nullable=False)
	end_date = Column("endDate", DateTime, nullable=False)
	is_all_day = Column("isAllDay", Boolean, default=False, nullable=False)
	type = Column(Enum(PersonalEventType, name="PersonalEventType", native_enum=False, length=32), nullable=False)
	color = Column(String(16), nullable=False)
	status = Column(Enum(EventStatus, name="EventStatus", native_enum=False, length=16), default=EventStatus.ACTIVE, nullable=False)
	user_id = Column("userId", String(32), ForeignKey("User.id", ondelete="CASCADE"), nullable=False)
	created_at = Column("createdAt", DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column("updatedAt", DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		Index("PersonalCalendarEvent_userId_startDate_idx", user_id, start_date),
	)

	user = relationship("User", back_populates="calendar_events")

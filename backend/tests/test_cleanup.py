"""
Tests for the periodic stale-row sweep.
"""
from datetime import datetime, timedelta

from sqlalchemy import func, select

from lxp import cleanup
from lxp.models import AiUsageLog, AuthSession, EventStatus, PersonalCalendarEvent, PersonalEventType


def test_purge_stale_rows(db, user, monkeypatch):
    monkeypatch.setattr(cleanup.settings, "ai_usage_retention_days", 90)
    monkeypatch.setattr(cleanup.settings, "calendar_purge_days", 30)
    monkeypatch.setattr(cleanup.settings, "session_idle_days", 30)
    now = datetime.utcnow()
    long_ago = now - timedelta(days=365)
    db.add_all([
        AiUsageLog(user_id=user.id, feature="generate", model="m", created_at=long_ago),
        AiUsageLog(user_id=user.id, feature="generate", model="m", created_at=now),
        PersonalCalendarEvent(user_id=user.id, title="Old", start_date=long_ago, end_date=long_ago + timedelta(hours=1),
                              type=PersonalEventType.BREAK, color="#9ca3af", status=EventStatus.DELETED,
                              updated_at=long_ago),
        PersonalCalendarEvent(user_id=user.id, title="Active", start_date=long_ago, end_date=long_ago + timedelta(hours=1),
                              type=PersonalEventType.BREAK, color="#9ca3af", updated_at=long_ago),
        AuthSession(session_id="idle", user_id=user.id, last_activity_at=long_ago),
        AuthSession(session_id="fresh", user_id=user.id, last_activity_at=now),
    ])
    db.commit()

    assert cleanup.purge_stale_rows(db) == 3

    assert db.scalar(select(func.count(AiUsageLog.id))) == 1
    assert db.scalars(select(PersonalCalendarEvent.title)).all() == ["Active"]
    assert db.scalars(select(AuthSession.session_id)).all() == ["fresh"]


def test_disabled_sweeps(db, user, monkeypatch):
    monkeypatch.setattr(cleanup.settings, "ai_usage_retention_days", 0)
    monkeypatch.setattr(cleanup.settings, "calendar_purge_days", 0)
    monkeypatch.setattr(cleanup.settings, "session_idle_days", 0)
    db.add(AiUsageLog(user_id=user.id, feature="generate", model="m", created_at=datetime(2001, 1, 1)))
    db.commit()
    assert cleanup.purge_stale_rows(db) == 0

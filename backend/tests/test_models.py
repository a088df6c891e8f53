"""
Schema-level tests for the User, AiUsageLog and PersonalCalendarEvent tables.
"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine, func, inspect, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from lxp.db import ensure_schema
from lxp.models import AiUsageLog, PersonalCalendarEvent, PersonalEventType, User


def _log(user_id, **kwargs):
    values = dict(user_id=user_id, feature="generate", model="gemini-test", input_tokens=10, output_tokens=20, generation_time=150)
    values.update(kwargs)
    return AiUsageLog(**values)


class TestAiUsageLogForeignKey:
    """userId must reference an existing User."""

    def test_unknown_user_is_rejected(self, db):
        """Inserting a row for a missing user fails the FK constraint."""
        db.add(_log("does-not-exist"))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
        assert db.scalar(select(func.count(AiUsageLog.id))) == 0

    def test_known_user_is_accepted(self, db, user):
        db.add(_log(user.id))
        db.commit()
        assert db.scalar(select(func.count(AiUsageLog.id))) == 1


class TestCascadeDelete:
    """Deleting a user removes everything they own."""

    def test_orm_delete_cascades_usage_logs(self, db, user, other_user):
        db.add_all([_log(user.id), _log(user.id), _log(other_user.id)])
        db.commit()

        db.delete(user)
        db.commit()

        remaining = db.scalars(select(AiUsageLog)).all()
        assert [row.user_id for row in remaining] == [other_user.id]

    def test_sql_delete_cascades_usage_logs(self, db, user):
        """The cascade is enforced by the database, not just the ORM."""
        db.add_all([_log(user.id) for _ in range(3)])
        db.commit()
        user_id = user.id
        db.expunge_all()

        db.execute(text('DELETE FROM "User" WHERE id = :id'), {"id": user_id})
        db.commit()

        count = db.scalar(select(func.count(AiUsageLog.id)).where(AiUsageLog.user_id == user_id))
        assert count == 0

    def test_delete_cascades_calendar_events(self, db, user):
        start = datetime(2026, 3, 2, 9, 0)
        db.add(PersonalCalendarEvent(
            user_id=user.id, title="Revision", start_date=start, end_date=start + timedelta(hours=1),
            type=PersonalEventType.STUDY_SESSION, color="#1F504B",
        ))
        db.commit()

        db.delete(user)
        db.commit()

        assert db.scalar(select(func.count(PersonalCalendarEvent.id))) == 0


class TestAiUsageLogTable:
    """Column names and indexes match the migration."""

    def test_columns(self, db):
        columns = {c["name"] for c in inspect(db.get_bind()).get_columns("AiUsageLog")}
        assert columns == {
            "id", "userId", "feature", "inputTokens", "outputTokens", "model",
            "generationTime", "metadata", "createdAt", "updatedAt",
        }

    def test_indexes(self, db):
        indexes = {ix["name"]: ix["column_names"] for ix in inspect(db.get_bind()).get_indexes("AiUsageLog")}
        assert indexes["AiUsageLog_userId_idx"] == ["userId"]
        assert indexes["AiUsageLog_feature_idx"] == ["feature"]
        assert indexes["AiUsageLog_createdAt_idx"] == ["createdAt"]

    def test_foreign_key_cascades(self, db):
        (fk,) = inspect(db.get_bind()).get_foreign_keys("AiUsageLog")
        assert fk["referred_table"] == "User"
        assert fk["constrained_columns"] == ["userId"]
        assert fk["options"].get("ondelete") == "CASCADE"

    def test_created_at_query_uses_index(self, db):
        plan = db.execute(text(
            'EXPLAIN QUERY PLAN SELECT id FROM "AiUsageLog" WHERE "createdAt" >= :since ORDER BY "createdAt" DESC LIMIT 10'
        ), {"since": datetime(2026, 1, 1)}).all()
        detail = " ".join(str(row[-1]) for row in plan)
        assert "AiUsageLog_createdAt_idx" in detail

    def test_metadata_round_trip(self, db, user):
        db.add(_log(user.id, meta={"provider": "gemini", "tags": ["quiz", "bloom"]}))
        db.commit()
        db.expunge_all()
        row = db.scalars(select(AiUsageLog)).one()
        assert row.meta == {"provider": "gemini", "tags": ["quiz", "bloom"]}
        assert row.total_tokens == 30


class TestEnsureSchema:
    """Databases created before the indexes and newer columns existed are upgraded."""

    def test_adds_missing_indexes_and_columns(self):
        legacy = create_engine("sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False})
        with legacy.begin() as conn:
            conn.exec_driver_sql(
                'CREATE TABLE "User" (id VARCHAR(32) PRIMARY KEY, username VARCHAR(128), "passwordHash" VARCHAR(256), '
                '"createdAt" DATETIME, "updatedAt" DATETIME)'
            )
            conn.exec_driver_sql(
                'CREATE TABLE "AiUsageLog" (id VARCHAR(32) PRIMARY KEY, "userId" VARCHAR(32), feature TEXT, '
                '"inputTokens" INTEGER, "outputTokens" INTEGER, model TEXT, "generationTime" INTEGER, '
                'metadata JSON, "createdAt" DATETIME, "updatedAt" DATETIME)'
            )

        ensure_schema(legacy)

        inspector = inspect(legacy)
        index_names = {ix["name"] for ix in inspector.get_indexes("AiUsageLog")}
        assert {"AiUsageLog_userId_idx", "AiUsageLog_feature_idx", "AiUsageLog_createdAt_idx"} <= index_names
        user_columns = {c["name"] for c in inspector.get_columns("User")}
        assert {"requestsUsed", "requestsLimit", "email", "phone"} <= user_columns

    def test_is_idempotent(self, db):
        ensure_schema(db.get_bind())
        ensure_schema(db.get_bind())
        names = [ix["name"] for ix in inspect(db.get_bind()).get_indexes("AiUsageLog")]
        assert names.count("AiUsageLog_createdAt_idx") == 1


def test_user_defaults(db):
    user = User(username="dana", password_hash="x")
    db.add(user)
    db.commit()
    assert len(user.id) == 32
    assert user.requests_used == 0
    assert user.requests_limit == 1000

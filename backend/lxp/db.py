from __future__ import annotations
import logging

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from .settings import settings


logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./app.db"

_engine_kwargs: dict = {}
if DATABASE_URL.startswith("sqlite"):
	_engine_kwargs["connect_args"] = {"check_same_thread": False}
	# In-memory databases live per connection; share one across the pool
	if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
		_engine_kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, future=True, **_engine_kwargs)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
	# SQLite ignores REFERENCES / ON DELETE CASCADE unless asked per connection
	module = type(dbapi_connection).__module__
	if not module.startswith("sqlite3"):
		return
	cursor = dbapi_connection.cursor()
	cursor.execute("PRAGMA foreign_keys=ON")
	cursor.close()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Columns added after the first release; (table, column, DDL type)
_ADDED_COLUMNS = [
	("User", "email", "VARCHAR(256)"),
	("User", "phone", "VARCHAR(32)"),
	("User", "requestsUsed", "INTEGER DEFAULT 0 NOT NULL"),
	("User", "requestsLimit", "INTEGER DEFAULT 1000 NOT NULL"),
	("PersonalCalendarEvent", "status", "VARCHAR(16) DEFAULT 'ACTIVE' NOT NULL"),
]

_REQUIRED_INDEXES = [
	("AiUsageLog", "AiUsageLog_userId_idx", "userId"),
	("AiUsageLog", "AiUsageLog_feature_idx", "feature"),
	("AiUsageLog", "AiUsageLog_createdAt_idx", "createdAt"),
]


# Lightweight additive migrations for databases created by older builds
def ensure_schema(bind=None) -> None:
	bind = bind or engine
	inspector = inspect(bind)
	tables = set(inspector.get_table_names())
	with bind.begin() as conn:
		for table, column, ddl in _ADDED_COLUMNS:
			if table not in tables:
				continue
			cols = {c["name"] for c in inspector.get_columns(table)}
			if column not in cols:
				logger.info("adding column %s.%s", table, column)
				conn.exec_driver_sql(f'ALTER TABLE "{table}" ADD COLUMN "{column}" {ddl}')
		for table, index_name, column in _REQUIRED_INDEXES:
			if table not in tables:
				continue
			existing = {ix["name"] for ix in inspector.get_indexes(table)}
			if index_name not in existing:
				logger.info("creating index %s", index_name)
				conn.exec_driver_sql(f'CREATE INDEX "{index_name}" ON "{table}" ("{column}")')

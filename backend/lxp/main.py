import asyncio
import logging

from fastapi import FastAPI

from .db import Base, engine, SessionLocal, ensure_schema
from .cleanup import purge_stale_rows
from .settings import settings
from .routers import auth
from .routers import calendar
from .routers import gemini
from .routers import usage
from .routers.auth import ensure_seed_user

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 24 * 60 * 60

app = FastAPI(title="LXP API")
app.include_router(auth.router)
app.include_router(gemini.router)
app.include_router(usage.router)
app.include_router(calendar.router)


@app.get("/info")
def root():
	return {"status": "ok", "gemini_configured": bool(settings.gemini_api_key)}


def _run_cleanup() -> None:
	db = SessionLocal()
	try:
		purge_stale_rows(db)
	except Exception:
		db.rollback()
		logger.exception("cleanup failed")
	finally:
		db.close()


async def _cleanup_watcher():
	while True:
		await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
		_run_cleanup()


@app.on_event("startup")
async def startup_event():
	Base.metadata.create_all(bind=engine)
	ensure_schema()
	db = SessionLocal()
	try:
		ensure_seed_user(db)
	finally:
		db.close()
	_run_cleanup()
	asyncio.create_task(_cleanup_watcher())

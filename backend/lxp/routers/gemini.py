import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from ..gemini_client import GeminiClient
from .auth import get_current_user, User
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import User as UserRow
from ..usage import track_generation

router = APIRouter(prefix="/gemini", tags=["gemini"])

logger = logging.getLogger(__name__)


class GenerateRequest(BaseModel):
	prompt: str
	feature: str = "generate"
	model: Optional[str] = None
	metadata: Optional[Dict[str, Any]] = None


class GenerateResponse(BaseModel):
	text: str
	model: str
	input_tokens: int
	output_tokens: int


async def get_gemini_client():
	try:
		client = GeminiClient()
	except ValueError as e:
		raise HTTPException(status_code=503, detail=str(e))
	try:
		yield client
	finally:
		await client.aclose()


def _consume_request(db: Session, user_id: str) -> None:
	row = db.get(UserRow, user_id)
	if row is None:
		raise HTTPException(status_code=401, detail="Unknown user")
	if row.requests_used >= row.requests_limit:
		raise HTTPException(status_code=429, detail="request limit reached")
	row.requests_used += 1
	db.add(row)
	db.commit()


@router.post("/generate", response_model=GenerateResponse)
async def generate(
	req: GenerateRequest,
	user: User = Depends(get_current_user),
	db: Session = Depends(get_db),
	client: GeminiClient = Depends(get_gemini_client),
):
	prompt = (req.prompt or "").strip()
	if not prompt:
		raise HTTPException(status_code=400, detail="prompt is required")
	_consume_request(db, user.id)
	metadata = dict(req.metadata or {})
	metadata["promptChars"] = len(prompt)
	generate_kwargs = {"model": req.model} if req.model else {}
	try:
		result = await track_generation(db, user.id, req.feature, client, prompt, metadata=metadata, **generate_kwargs)
	except (httpx.HTTPError, RuntimeError) as e:
		logger.warning("generation failed for %s: %s", user.username, e)
		raise HTTPException(status_code=502, detail=str(e))
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	return GenerateResponse(
		text=result.text,
		model=result.model,
		input_tokens=result.input_tokens,
		output_tokens=result.output_tokens,
	)

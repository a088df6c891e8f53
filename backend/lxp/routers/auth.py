import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..settings import settings
from ..db import get_db
from ..models import AuthSession, User as UserRow

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	id: str
	username: str


def _bcrypt_safe(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	password_bytes = password.encode('utf-8')
	if len(password_bytes) > 72:
		password_bytes = password_bytes[:72]
	return password_bytes.decode('utf-8', errors='ignore')


def hash_password(password: str) -> str:
	return pwd_context.hash(_bcrypt_safe(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(_bcrypt_safe(plain_password), hashed_password)


def ensure_seed_user(db: Session) -> Optional[UserRow]:
	username = settings.seed_username
	password = settings.seed_password_plain
	if not username or not password:
		return None
	row = db.query(UserRow).filter(UserRow.username == username).first()
	if row is None:
		row = UserRow(username=username, password_hash=hash_password(password), requests_limit=settings.default_requests_limit)
		db.add(row)
		db.commit()
		logger.info("created seed user %s", username)
	return row


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
	row = db.query(UserRow).filter(UserRow.username == username).first()
	if row and verify_password(password, row.password_hash):
		return User(id=row.id, username=row.username)
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		if minutes > 0:
			delta = timedelta(minutes=minutes)
		else:
			delta = timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = _resolve_expiry(expires_delta)
	to_encode.update({"exp": expire})
	encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return encoded_jwt


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	# Persist the session id (jti) server-side so it can be revoked
	session_id = uuid.uuid4().hex
	try:
		db.add(AuthSession(session_id=session_id, user_id=user.id))
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("could not persist session for %s", user.username)
		raise HTTPException(status_code=503, detail="Could not create session")
	access_token = create_access_token({"sub": user.id, "username": user.username, "jti": session_id})
	return Token(access_token=access_token)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		user_id: str | None = payload.get("sub")
		jti: str | None = payload.get("jti")
		if user_id is None or jti is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	# The session row must still exist; deleting it revokes the token
	try:
		row = db.get(AuthSession, jti)
		if not row or row.user_id != user_id:
			raise credentials_exception
		row.last_activity_at = datetime.utcnow()
		db.add(row)
		db.commit()
		user_row = db.get(UserRow, user_id)
	except SQLAlchemyError:
		db.rollback()
		# On DB errors, fail closed
		raise credentials_exception
	if user_row is None:
		raise credentials_exception
	return User(id=user_row.id, username=user_row.username)


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


class RegisterRequest(BaseModel):
	username: str
	password: str
	email: Optional[str] = None
	phone: Optional[str] = None


@router.post("/register", status_code=201, response_model=User)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	password = req.password or ""
	if not username or not password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if len(username) < 3 or len(username) > 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	existing = db.query(UserRow).filter(UserRow.username == username).first()
	if existing:
		raise HTTPException(status_code=409, detail="username already exists")
	row = UserRow(
		username=username,
		password_hash=hash_password(password),
		email=(req.email or "").strip() or None,
		phone=(req.phone or "").strip() or None,
		requests_limit=settings.default_requests_limit,
	)
	db.add(row)
	db.commit()
	return User(id=row.id, username=row.username)

# auth.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from skillpath.config import get_settings
from skillpath.errors import Unauthorized
from skillpath.models import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
BCRYPT_ROUNDS = 12

# auto_error=False so a missing token goes through our own 401 body
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login/oauth", auto_error=False)


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed stored hash
        return False


def authenticate_user(email: str, password: str, db: Session) -> Optional[Dict[str, Any]]:
    """Return the token claims for valid credentials, None otherwise."""
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        return None
    return {"email": user.email, "user_id": user.id}


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Session expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Could not validate credentials")

    email = payload.get("sub")
    user_id = payload.get("user_id")
    if not email or not user_id:
        raise Unauthorized("Could not validate credentials")
    return {"email": email, "user_id": user_id}


def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> Dict[str, Any]:
    """Resolve the caller from the bearer token; no store access happens here."""
    if not token:
        raise Unauthorized()
    return decode_access_token(token)

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt
from passlib.context import CryptContext

from database import DocumentStore, StorageError, find_by_id, get_store
from errors import AuthenticationError, AuthorizationError
from schemas import Role

# JWT Config
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-change")
ALGORITHM = "HS256"
# Tokens never expire unless this is set
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ["JWT_EXPIRE_MINUTES"]) if os.getenv("JWT_EXPIRE_MINUTES") else None

BCRYPT_ROUNDS = 12

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

logger = logging.getLogger(__name__)


# Credentials

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # unknown or malformed hash
        return False


def sanitize_user(user: Dict[str, Any]) -> Dict[str, Any]:
    # Never send password hash
    return {k: v for k, v in user.items() if k != "password"}


# Tokens

def create_access_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None, **claims) -> str:
    to_encode = {**claims, "sub": user_id, "role": role}
    if expires_delta is None and ACCESS_TOKEN_EXPIRE_MINUTES is not None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    if expires_delta is not None:
        to_encode["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the token's claims, or None if it is malformed, forged or expired."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("sub"), str) or not payload["sub"]:
        return None
    return payload


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


# Dependencies

def get_current_user(
    authorization: Optional[str] = Header(default=None),
    store: DocumentStore = Depends(get_store),
) -> Dict[str, Any]:
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError()
    payload = decode_token(token)
    if payload is None:
        raise AuthenticationError()
    try:
        users = store.load()["users"]
    except StorageError:
        raise HTTPException(status_code=500, detail="Authentication error")
    user = find_by_id(users, payload["sub"])
    if not user:
        raise AuthenticationError()
    try:
        Role(user.get("role"))
    except ValueError:
        logger.warning("User %s has unknown role %r", user.get("id"), user.get("role"))
        raise AuthenticationError()
    return sanitize_user(user)


def require_admin(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    if current_user.get("role") != Role.admin.value:
        raise AuthorizationError("Admin access required")
    return current_user


def check_ownership(user: Dict[str, Any], owner_id: Optional[str]) -> bool:
    if user.get("role") == Role.admin.value:
        return True
    return owner_id is not None and user.get("id") == owner_id


def require_ownership(userId: str, current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    if not check_ownership(current_user, userId):
        raise AuthorizationError("Access denied: You can only access your own resources")
    return current_user

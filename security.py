import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from config import Settings
from schemas import Admin

logger = logging.getLogger(__name__)

JWT_ALGO = "HS256"
security = HTTPBearer(auto_error=False)


class AdminLoginRequired(Exception):
    """Raised by admin routes when the session is not authenticated."""


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


# ----------------------- Passwords -----------------------
def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


# ----------------------- Tokens -----------------------
def create_token(user_id: str, settings: Settings) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=settings.jwt_expire_days)
    return jwt.encode({"id": user_id, "exp": exp}, settings.jwt_secret, algorithm=JWT_ALGO)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="No token")
    payload = decode_token(credentials.credentials, settings)
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    return user_id


# ----------------------- Admin session -----------------------
def require_admin_session(request: Request):
    if not request.session.get("is_admin_logged_in"):
        raise AdminLoginRequired()


def ensure_default_admin(db: Database, settings: Settings):
    """Make sure the configured bootstrap admin exists.

    Existing admins are left alone unless ADMIN_RESET_ON_BOOT is set, in
    which case the collection is emptied first.
    """
    if not settings.admin_email or not settings.admin_password:
        logger.info("ADMIN_EMAIL/ADMIN_PASSWORD not set, skipping admin bootstrap")
        return

    if settings.admin_reset_on_boot:
        removed = db["admin"].delete_many({}).deleted_count
        logger.warning("ADMIN_RESET_ON_BOOT is set, removed %d admin account(s)", removed)

    admin = Admin(
        name=settings.admin_name,
        email=settings.admin_email,
        password_hash=hash_password(settings.admin_password, settings.bcrypt_rounds),
    )
    result = db["admin"].update_one(
        {"email": admin.email},
        {"$setOnInsert": admin.model_dump()},
        upsert=True,
    )
    if result.upserted_id is not None:
        logger.info("Created bootstrap admin %s", admin.email)
    else:
        logger.info("Bootstrap admin %s already exists", admin.email)

"""
Runtime configuration for the aquarium backend.

Values come from the environment (optionally a .env file). Secrets have no
fallback: the process refuses to start without JWT_SECRET and SESSION_SECRET.
"""
import os
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from schemas import check_password_bytes


class ConfigError(RuntimeError):
    pass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    mongodb_uri: str = "mongodb://localhost:27017"
    database_name: str = "aquarium"
    jwt_secret: str
    jwt_expire_days: int = Field(7, ge=1)
    session_secret: str
    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    payment_currency: str = "INR"
    upload_dir: str = "public/uploads"
    max_upload_mb: int = Field(10, ge=1)
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    admin_name: str = "Admin User"
    admin_reset_on_boot: bool = False
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    port: int = 8000

    @field_validator("admin_password")
    @classmethod
    def admin_password_fits_hash(cls, v: Optional[str]) -> Optional[str]:
        return check_password_bytes(v)

    @property
    def gateway_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(find_dotenv(usecwd=True))

        missing = [k for k in ("JWT_SECRET", "SESSION_SECRET") if not os.getenv(k)]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        values = {
            "jwt_secret": os.environ["JWT_SECRET"],
            "session_secret": os.environ["SESSION_SECRET"],
            "admin_reset_on_boot": _env_bool("ADMIN_RESET_ON_BOOT"),
        }
        optional = {
            "mongodb_uri": "MONGODB_URI",
            "database_name": "DATABASE_NAME",
            "jwt_expire_days": "JWT_EXPIRE_DAYS",
            "razorpay_key_id": "RAZORPAY_KEY_ID",
            "razorpay_key_secret": "RAZORPAY_KEY_SECRET",
            "razorpay_api_url": "RAZORPAY_API_URL",
            "payment_currency": "PAYMENT_CURRENCY",
            "upload_dir": "UPLOAD_DIR",
            "max_upload_mb": "MAX_UPLOAD_MB",
            "admin_email": "ADMIN_EMAIL",
            "admin_password": "ADMIN_PASSWORD",
            "admin_name": "ADMIN_NAME",
            "bcrypt_rounds": "BCRYPT_ROUNDS",
            "port": "PORT",
        }
        for field, key in optional.items():
            value = os.getenv(key)
            if value:
                values[field] = value

        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        try:
            return cls(**values)
        except ValidationError as e:
            err = e.errors()[0]
            raise ConfigError(f"Invalid setting {err['loc'][0]}: {err['msg']}") from e

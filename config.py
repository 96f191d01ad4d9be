import os
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse, urlunparse

DEFAULT_DATABASE_URL = "sqlite:///fleet_ledger.db"

DEFAULT_DRIVER_WAGE_RATE = Decimal("0.10")
DEFAULT_ASSISTANT_WAGE_RATE = Decimal("0.05")

TRIP_STATUS_CHOICES = {"PENDING", "WAITING_FOR_PRICE", "APPROVED"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        return default


def _env_decimal(name: str, default: Decimal) -> Decimal:
    value = os.getenv(name)
    if value is None:
        return default
    text = value.strip()
    if not text:
        return default
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return default
    if parsed < 0:
        return default
    return parsed


def _env_trip_status(name: str, default: str = "PENDING") -> str:
    value = (os.getenv(name) or "").strip().upper()
    if value not in TRIP_STATUS_CHOICES:
        return default
    # APPROVED is the older name of the waiting-for-price state
    if value == "APPROVED":
        return "WAITING_FOR_PRICE"
    return value


def _normalize_db_url(url: str) -> str:
    if not url:
        return DEFAULT_DATABASE_URL

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)

    parsed = urlparse(url)

    if parsed.scheme not in {"postgresql", "postgresql+psycopg2"}:
        return url

    def _preferred_db_name() -> str | None:
        for key in ("PGDATABASE", "POSTGRES_DB", "POSTGRES_DATABASE", "DATABASE_NAME"):
            value = os.getenv(key)
            if value:
                return value
        return None

    path = (parsed.path or "").lstrip("/")
    preferred_db = _preferred_db_name()

    if preferred_db:
        if not path:
            parsed = parsed._replace(path=f"/{preferred_db}")
        elif path == "postgres" and preferred_db != "postgres":
            parsed = parsed._replace(path=f"/{preferred_db}")

    return urlunparse(parsed)


def _env_database_url() -> str | None:
    url = os.getenv("DATABASE_URL")
    return url if url and url.strip() else None


def current_database_url() -> str:
    return _normalize_db_url(_env_database_url() or DEFAULT_DATABASE_URL)


def _env_sqlalchemy_database_uri() -> str | None:
    uri = os.getenv("SQLALCHEMY_DATABASE_URI")
    return uri if uri and uri.strip() else None


class Config:
    SQLALCHEMY_DATABASE_URI = _env_sqlalchemy_database_uri() or current_database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=_env_float("JWT_ACCESS_TOKEN_HOURS", 10.0))
    JWT_TOKEN_LOCATION = ["headers", "cookies"]
    JWT_COOKIE_CSRF_PROTECT = os.getenv("JWT_COOKIE_CSRF_PROTECT", "false").lower() == "true"
    ENV = os.getenv("FLASK_ENV", "production")

    # Status given to trips entered by staff and to trips submitted from the
    # public form. Both default to PENDING so every trip goes through approval.
    TRIP_DEFAULT_STATUS = _env_trip_status("TRIP_DEFAULT_STATUS")
    TRIP_PUBLIC_DEFAULT_STATUS = _env_trip_status("TRIP_PUBLIC_DEFAULT_STATUS")

    DRIVER_WAGE_RATE = _env_decimal("DRIVER_WAGE_RATE", DEFAULT_DRIVER_WAGE_RATE)
    ASSISTANT_WAGE_RATE = _env_decimal("ASSISTANT_WAGE_RATE", DEFAULT_ASSISTANT_WAGE_RATE)

    TRIP_EXPENSE_REASON = os.getenv("TRIP_EXPENSE_REASON", "Trip expenses")

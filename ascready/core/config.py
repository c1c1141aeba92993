# FILE: ascready/core/config.py
import os
from typing import List
from pydantic import BaseModel
from dotenv import load_dotenv
from urllib.parse import quote_plus

load_dotenv()


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def _mysql_uri() -> str:
    user = os.getenv("MYSQL_USER", "asc_user")
    password = os.getenv("MYSQL_PASSWORD", "asc_password")
    host = os.getenv("MYSQL_HOST", "localhost")
    port = os.getenv("MYSQL_PORT", "3306")
    db_name = os.getenv("MYSQL_DB", "asc_readiness")
    driver = os.getenv("DB_DRIVER", "pymysql")
    return (f"mysql+{driver}://{quote_plus(user)}:{quote_plus(password)}"
            f"@{host}:{port}/{db_name}?charset=utf8mb4")


class Settings(BaseModel):
    PROJECT_NAME: str = os.getenv("PROJECT_NAME", "ASC Case Readiness")
    API_V1_STR: str = os.getenv("API_V1_STR", "/api")

    # CORS (env takes priority)
    BACKEND_CORS_ORIGINS: List[str] = _split_csv(
        os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"))

    # ---------- Database ----------
    # DATABASE_URL wins; otherwise build a MySQL URI from MYSQL_* vars
    SQLALCHEMY_DATABASE_URI: str = os.getenv("DATABASE_URL") or _mysql_uri()
    SQL_ECHO: bool = _flag("SQL_ECHO")

    # ---------- Security ----------
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-this")
    JWT_ALG: str = os.getenv("JWT_ALG", "HS256")

    # ---------- Logging ----------
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # ---------- Readiness engine ----------
    DEFAULT_EXPIRATION_WARNING_DAYS: int = int(
        os.getenv("DEFAULT_EXPIRATION_WARNING_DAYS", "30"))
    RISK_ORANGE_DAYS: int = int(os.getenv("RISK_ORANGE_DAYS", "7"))
    DEFAULT_VERIFICATION_POLICY: str = os.getenv(
        "DEFAULT_VERIFICATION_POLICY", "BINDING").upper()
    DEFAULT_VERIFICATION_FRESHNESS_HOURS: int = int(
        os.getenv("DEFAULT_VERIFICATION_FRESHNESS_HOURS", "72"))
    AVAILABLE_COUNT_DISPLAY_CAP: int = int(
        os.getenv("AVAILABLE_COUNT_DISPLAY_CAP", "99"))
    DAY_BEFORE_MAX_WORKERS: int = int(os.getenv("DAY_BEFORE_MAX_WORKERS", "4"))


settings = Settings()

# chatdesk/core/config.py
"""
Application configuration - loads from environment variables.
Single source of truth for all settings.
"""
import os
from typing import List, Optional
from urllib.parse import quote_plus
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables FIRST
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_path = BASE_DIR / '.env'
load_dotenv(dotenv_path=env_path)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() not in ("0", "false", "no")


LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILES: bool = _flag("LOG_TO_FILES", "true")

# ────────────────────────────────────────────
# Database Configuration
# ────────────────────────────────────────────
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "chatdesk_db")
DATABASE_URL = os.getenv("DATABASE_URL")

# Build DATABASE_URL
if not DATABASE_URL:
    encoded_password = quote_plus(DB_PASSWORD)
    DATABASE_URL = f"postgresql://{DB_USER}:{encoded_password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"

# ────────────────────────────────────────────
# Agent JWT Configuration
# ────────────────────────────────────────────
JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

if not JWT_SECRET_KEY:
    import warnings
    warnings.warn("JWT_SECRET_KEY not set!")

# ────────────────────────────────────────────
# Widget Session Tokens
# ────────────────────────────────────────────
WIDGET_TOKEN_SECRET: str = os.getenv("WIDGET_TOKEN_SECRET") or JWT_SECRET_KEY or "change-this-widget-secret"
WIDGET_TOKEN_TTL_MINUTES: int = int(os.getenv("WIDGET_TOKEN_TTL_MINUTES", "720"))
WIDGET_TOKEN_REQUIRED: bool = _flag("WIDGET_TOKEN_REQUIRED", "true")

# ────────────────────────────────────────────
# AI Engine
# ────────────────────────────────────────────
OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
AI_MODEL: str = os.getenv("AI_MODEL", "gpt-4o-mini")
AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "20"))
AI_MAX_TOKENS: int = int(os.getenv("AI_MAX_TOKENS", "1000"))
AI_TEMPERATURE: float = float(os.getenv("AI_TEMPERATURE", "0.7"))

# ────────────────────────────────────────────
# Hand-off / Presence
# ────────────────────────────────────────────
AGENT_RECENT_LOGIN_MINUTES: int = int(os.getenv("AGENT_RECENT_LOGIN_MINUTES", "5"))
SESSION_ACTIVITY_WINDOW_MINUTES: int = int(os.getenv("SESSION_ACTIVITY_WINDOW_MINUTES", "30"))
AGENT_SELECTION_STRATEGY: str = os.getenv("AGENT_SELECTION_STRATEGY", "recent")

# ────────────────────────────────────────────
# CORS
# ────────────────────────────────────────────
CORS_ORIGINS: List[str] = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]


# ────────────────────────────────────────────
# Settings Class
# ────────────────────────────────────────────
class Settings:
    DATABASE_URL: str = DATABASE_URL
    LOG_LEVEL: str = LOG_LEVEL
    JWT_SECRET_KEY: str = JWT_SECRET_KEY
    JWT_ALGORITHM: str = JWT_ALGORITHM
    WIDGET_TOKEN_SECRET: str = WIDGET_TOKEN_SECRET
    WIDGET_TOKEN_TTL_MINUTES: int = WIDGET_TOKEN_TTL_MINUTES
    WIDGET_TOKEN_REQUIRED: bool = WIDGET_TOKEN_REQUIRED
    AI_MODEL: str = AI_MODEL
    AI_TIMEOUT_SECONDS: float = AI_TIMEOUT_SECONDS
    AGENT_RECENT_LOGIN_MINUTES: int = AGENT_RECENT_LOGIN_MINUTES
    SESSION_ACTIVITY_WINDOW_MINUTES: int = SESSION_ACTIVITY_WINDOW_MINUTES
    AGENT_SELECTION_STRATEGY: str = AGENT_SELECTION_STRATEGY


settings = Settings()

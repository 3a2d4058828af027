# src/frontdoor_bff/config.py

import logging
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# .env is at the service root, two levels up from src/frontdoor_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    logger.info("FrontdoorBFF: loaded .env file from %s", ENV_FILE_PATH)
else:
    logger.info("FrontdoorBFF: no .env file at %s, relying on environment variables.", ENV_FILE_PATH)

DEFAULT_SESSION_SECRET = "change-me"


class Settings(BaseSettings):
    # === Salesforce Connected App ===
    SF_LOGIN_URL: str = "https://login.salesforce.com"
    CLIENT_ID: Optional[str] = None
    CLIENT_SECRET: Optional[str] = None
    REDIRECT_URI: Optional[str] = None
    OAUTH_SCOPE: str = "web refresh_token openid"

    # === Session Management ===
    SESSION_SECRET: str = DEFAULT_SESSION_SECRET
    SESSION_COOKIE_NAME: str = "sf_session"
    SESSION_TTL_SECONDS: int = 60 * 60  # 1 hour
    # SameSite=None + Secure is required when embedded in a cross-site iframe
    SESSION_COOKIE_SECURE: bool = True
    SESSION_COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "none"

    # === Outbound HTTP ===
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # === Server ===
    TRUST_PROXY: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @field_validator("SF_LOGIN_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("SF_LOGIN_URL must be an absolute http(s) URL.")
        return v

    @field_validator("SESSION_COOKIE_SAMESITE", mode="before")
    @classmethod
    def lower_samesite(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("SESSION_TTL_SECONDS")
    @classmethod
    def positive_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("SESSION_TTL_SECONDS must be positive.")
        return v

    # === Salesforce endpoints (derived properties) ===
    @property
    def AUTHORIZE_URL(self) -> str:
        return f"{self.SF_LOGIN_URL}/services/oauth2/authorize"

    @property
    def TOKEN_URL(self) -> str:
        return f"{self.SF_LOGIN_URL}/services/oauth2/token"

    def missing_oauth_settings(self) -> List[str]:
        """Names of the Connected App settings that are not configured."""
        return [
            name
            for name in ("CLIENT_ID", "CLIENT_SECRET", "REDIRECT_URI")
            if not getattr(self, name)
        ]

    def startup_warnings(self) -> List[str]:
        warnings = []
        missing = self.missing_oauth_settings()
        if missing:
            warnings.append(f"{', '.join(missing)} should be set in env; the OAuth flow will fail until they are.")
        if self.SESSION_SECRET == DEFAULT_SESSION_SECRET:
            warnings.append("SESSION_SECRET is the built-in default; session cookies can be forged.")
        if self.SESSION_COOKIE_SAMESITE == "none" and not self.SESSION_COOKIE_SECURE:
            warnings.append(
                "SESSION_COOKIE_SAMESITE=none without SESSION_COOKIE_SECURE; "
                "browsers will drop the session cookie inside a cross-site iframe."
            )
        return warnings


try:
    settings = Settings()
except Exception:
    logger.exception("FrontdoorBFF: error instantiating Settings")
    raise

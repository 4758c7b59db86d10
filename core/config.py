"""
core/config.py -- TeamRoster settings, read from the environment and .env.

Nothing else in the tree touches os.environ. Modules call get_settings(),
which builds Settings on first use and hands back the same object afterwards
(lru_cache), so FastAPI dependencies and plain modules see one configuration.

Field names map to upper-cased environment variables: database_url reads
DATABASE_URL, token_expire_seconds reads TOKEN_EXPIRE_SECONDS, and so on.

SECRET_KEY policy, enforced by check_signing_key():
  [M6] Keys under 32 characters are refused. Tokens are HS256-signed with
       this key and a short one can be brute-forced offline.
  [M7] Outside DEBUG a missing key stops startup. With DEBUG=true a random
       key is generated instead, which logs every session out on restart.

Layer rule: core/ is the kernel. No imports from api/, auth/ or teams/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("teamroster.config")

_REPO_ROOT = Path(__file__).resolve().parent.parent
_MIN_KEY_LENGTH = 32


class Settings(BaseSettings):
    """Every knob TeamRoster reads at runtime.

    Defaults are usable for local development and tests; production only has
    to supply SECRET_KEY and, usually, DATABASE_URL.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # --- runtime ---------------------------------------------------------

    debug: bool = False
    # "" means unset; check_signing_key() replaces or rejects it.
    secret_key: str = ""
    # Users and teams live in the same database; any SQLAlchemy URL works.
    database_url: str = f"sqlite:///{_REPO_ROOT / 'teamroster.db'}"

    # --- accounts and tokens ----------------------------------------------

    # No server-side revocation exists, so expiry is the only way a leaked
    # token stops working.
    token_expire_seconds: int = 3600
    self_registration_enabled: bool = True
    password_min_length: int = 8

    # Where the command-line client keeps its bearer token between runs.
    session_file: Path = Path.home() / ".teamroster" / "token"

    # --- slowapi limits, per client IP ------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # --- HTTP surface -----------------------------------------------------

    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]
    allowed_hosts: list[str] = ["*"]

    @model_validator(mode="after")
    def check_signing_key(self) -> "Settings":
        """Fill in a throwaway key under DEBUG, refuse a missing or weak one otherwise."""
        if not self.secret_key and self.debug:
            self.secret_key = secrets.token_hex(_MIN_KEY_LENGTH)
            logger.warning("SECRET_KEY not set, generated one for this process. Issued tokens die with it.")
        elif not self.secret_key:
            raise ValueError("SECRET_KEY must be set unless DEBUG=true (set it in the environment or .env).")
        if len(self.secret_key) < _MIN_KEY_LENGTH:
            raise ValueError(f"SECRET_KEY must be at least {_MIN_KEY_LENGTH} characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, building it on first call.

    Tests that need different environment values can monkeypatch attributes
    on the returned object or call get_settings.cache_clear().
    """
    return Settings()

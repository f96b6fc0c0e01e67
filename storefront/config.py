import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"


def _flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


def normalize_database_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    # allow Heroku-style URLs
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, built once at startup.

    Components receive the instance through their constructors; nothing
    downstream reads the environment directly.
    """

    stripe_secret_key: Optional[str] = None
    stripe_public_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    database_url: Optional[str] = None
    backup_path: Path = Path("orders_backup.json")
    admin_password: Optional[str] = None
    jwt_secret: str = field(default_factory=lambda: secrets.token_urlsafe(32))
    admin_token_ttl: int = 3600
    admin_expose_client_secret: bool = False
    gateway_timeout: float = 10.0
    database_timeout: float = 5.0
    port: int = 3000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_path: Path = ENV_PATH) -> "Settings":
        load_dotenv(dotenv_path=env_path)
        env = os.environ
        kwargs = dict(
            stripe_secret_key=env.get("STRIPE_SECRET_KEY"),
            stripe_public_key=env.get("STRIPE_PUBLIC_KEY"),
            stripe_webhook_secret=env.get("STRIPE_WEBHOOK_SECRET"),
            database_url=normalize_database_url(
                env.get("DATABASE_URL") or env.get("POSTGRES_URL")
            ),
            backup_path=Path(env.get("ORDERS_BACKUP_FILE", "orders_backup.json")),
            admin_password=env.get("ADMIN_PASSWORD") or None,
            admin_token_ttl=int(env.get("ADMIN_TOKEN_TTL", "3600")),
            admin_expose_client_secret=_flag(env.get("ADMIN_EXPOSE_CLIENT_SECRET")),
            gateway_timeout=float(env.get("GATEWAY_TIMEOUT", "10")),
            database_timeout=float(env.get("DATABASE_TIMEOUT", "5")),
            port=int(env.get("PORT", "3000")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
        if env.get("JWT_SECRET"):
            kwargs["jwt_secret"] = env["JWT_SECRET"]
        return cls(**kwargs)

    def describe(self) -> dict:
        """Which settings are present, without their values."""
        return {
            "port": self.port,
            "stripe_secret_key": bool(self.stripe_secret_key),
            "stripe_public_key": bool(self.stripe_public_key),
            "stripe_webhook_secret": bool(self.stripe_webhook_secret),
            "database": bool(self.database_url),
            "admin_password": bool(self.admin_password),
            "backup_path": str(self.backup_path),
        }

"""
Agendo Backend — Configuration
Standalone settings with Mercado Pago sandbox/production toggle.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from pydantic_settings import BaseSettings

SANDBOX_MODE = "sandbox"
PRODUCTION_MODE = "production"

_MODE_ALIASES = {
    "dev": SANDBOX_MODE,
    "development": SANDBOX_MODE,
    "sandbox": SANDBOX_MODE,
    "test": SANDBOX_MODE,
    "prod": PRODUCTION_MODE,
    "production": PRODUCTION_MODE,
    "live": PRODUCTION_MODE,
}


def normalize_mode(value: str) -> str:
    """Resolve a mode alias. Unknown values fall back to production."""
    return _MODE_ALIASES.get((value or "").strip().lower(), PRODUCTION_MODE)


@dataclass(frozen=True)
class ProviderConfig:
    """Provider settings, built once from the environment at startup."""

    access_token: str
    api_host: str = "api.mercadopago.com"
    mode: str = PRODUCTION_MODE
    back_url: Optional[str] = None
    webhook_url: Optional[str] = None
    currency: str = "BRL"
    timeout: float = 15.0

    @property
    def base_url(self) -> str:
        host = self.api_host.strip().rstrip("/")
        if host.startswith("http://") or host.startswith("https://"):
            return host
        return f"https://{host}"


class Settings(BaseSettings):
    # ── Application ──────────────────────────────────────────────────────
    APP_NAME: str = "Agendo Billing"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # ── Database ─────────────────────────────────────────────────────────
    DATABASE_URL: str = "postgresql+asyncpg://agendo:changeme@db:5432/agendo"

    # ── Auth / JWT ───────────────────────────────────────────────────────
    SECRET_KEY: str = "change-me-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    # ── Mercado Pago ─────────────────────────────────────────────────────
    MERCADO_PAGO_MODE: str = PRODUCTION_MODE  # dev/sandbox/test or prod/live
    MERCADO_PAGO_ACCESS_TOKEN: str = ""
    MERCADO_PAGO_API_HOST: str = "api.mercadopago.com"
    MERCADO_PAGO_BACK_URL: str = ""
    MERCADO_PAGO_WEBHOOK_URL: str = ""
    MERCADO_PAGO_CURRENCY: str = "BRL"
    MERCADO_PAGO_TIMEOUT_SECONDS: float = 15.0

    # ── Plan Catalog ─────────────────────────────────────────────────────
    # JSON object, e.g. {"bronze": 20, "gold": 0}; 0 means unlimited
    PLAN_LIMIT_OVERRIDES: Dict[str, int] = {}

    # ── Mercado Pago Helper Properties ───────────────────────────────────
    @property
    def billing_mode(self) -> str:
        return normalize_mode(self.MERCADO_PAGO_MODE)

    @property
    def is_sandbox(self) -> bool:
        return self.billing_mode == SANDBOX_MODE

    def provider_config(self) -> ProviderConfig:
        """Build the immutable provider configuration used by the billing core."""
        return ProviderConfig(
            access_token=self.MERCADO_PAGO_ACCESS_TOKEN,
            api_host=self.MERCADO_PAGO_API_HOST,
            mode=self.billing_mode,
            back_url=self.MERCADO_PAGO_BACK_URL or None,
            webhook_url=self.MERCADO_PAGO_WEBHOOK_URL or None,
            currency=self.MERCADO_PAGO_CURRENCY,
            timeout=self.MERCADO_PAGO_TIMEOUT_SECONDS,
        )

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

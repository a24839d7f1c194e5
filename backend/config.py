"""
Configuration management for the Marketplace Lifecycle API.

Loads settings from .env via pydantic-settings.

Policy notes:
    - SELF_SERVICE_ROLES is the single switch for which roles a customer may
      request on their own (e.g. "VENDOR" or "VENDOR,RIDER").
    - ADMIN and DELIVERY_AGENCY are administrator-provisioned and are refused
      here even if someone lists them.
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

from domain.policy import ADMIN_PROVISIONED_ROLES

logger = logging.getLogger(__name__)

ADMIN_ONLY_ROLES = frozenset(role.value for role in ADMIN_PROVISIONED_ROLES)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/marketplace.db"
    sql_echo: bool = False

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "marketplace-api"
    jwt_access_ttl_minutes: int = 60

    # ── Role policy ─────────────────────────────────────────────────
    # Comma-separated roles a CUSTOMER may self-promote to.
    self_service_roles: str = "VENDOR"
    rider_application_notice: str = (
        "Rider self-registration is no longer available. Delivery partners "
        "are onboarded by an administrator; please contact support to be "
        "registered as a delivery agency."
    )
    agency_provisioning_notice: str = (
        "Delivery agency accounts can only be created by administrators."
    )

    # ── Rate limiting (self-service promotion endpoints) ────────────
    promotion_rate_limit: int = 5
    promotion_rate_window_seconds: int = 3600

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173,http://127.0.0.1:5173"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def self_service_roles_list(self) -> List[str]:
        """Parse self-service roles, normalised to upper case."""
        return [
            role.strip().upper()
            for role in self.self_service_roles.split(",")
            if role.strip()
        ]

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Admin-only roles in SELF_SERVICE_ROLES are rejected in every
        environment; the remaining checks apply to production only.
        """
        leaked = ADMIN_ONLY_ROLES.intersection(self.self_service_roles_list)
        if leaked:
            raise ValueError(
                f"SELF_SERVICE_ROLES must not contain administrator-provisioned "
                f"roles: {', '.join(sorted(leaked))}"
            )

        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign access tokens."
                )
            if self.sql_echo:
                raise ValueError("SQL_ECHO must be false in production.")
            logger.info("✅ Production settings validated")
        else:
            warnings = []
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.jwt_secret:
                warnings.append("JWT_SECRET is empty (tokens cannot be issued)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()

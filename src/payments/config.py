"""Service configuration.

All settings are read once at startup into an explicit :class:`Settings`
object that is passed to every component. Required values are validated
eagerly by :func:`load_settings`, so a missing secret or table prefix
fails the process at boot instead of inside a webhook request.

Environment variables (case-insensitive, optionally from ``.env``):

- ``STRIPE_SECRET_KEY`` / ``STRIPE_WEBHOOK_SECRET``: Stripe credentials
- ``SSM_PARAMETER_PREFIX``: when set, missing Stripe credentials are read
  from ``{prefix}/stripe/secret_key`` and ``{prefix}/stripe/webhook_secret``
- ``DYNAMODB_TABLE_PREFIX``: prefix of the orders/subscriptions/event tables
"""

import logging

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from payments.models.errors import ConfigurationError
from payments.services.ssm_service import SSMService, SSMServiceError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime configuration for the webhook API, reconciler and log analyzer."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = Field(default="dev", description="Deployment environment name")

    # Stripe
    stripe_secret_key: SecretStr | None = None
    stripe_webhook_secret: SecretStr | None = None
    stripe_api_version: str | None = Field(
        default=None,
        description="Pin the Stripe API version; account default when unset",
    )
    stripe_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Per-call timeout for Stripe API requests",
    )
    webhook_tolerance_seconds: int = Field(
        default=300,
        gt=0,
        description="Maximum age of a signed webhook timestamp",
    )
    ssm_parameter_prefix: str | None = None

    # Data store
    dynamodb_table_prefix: str | None = None
    aws_region: str | None = None
    dynamodb_endpoint_url: str | None = None

    # Reconciliation
    reconcile_batch_size: int = Field(default=100, gt=0)
    reconcile_concurrency: int = Field(default=5, gt=0, le=50)
    reconcile_batch_pause_seconds: float = Field(default=1.0, ge=0)

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return value

    @field_validator("ssm_parameter_prefix")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        return value.rstrip("/") if value else value

    @property
    def webhook_secret(self) -> str:
        if self.stripe_webhook_secret is None:
            raise ConfigurationError(["stripe_webhook_secret"])
        return self.stripe_webhook_secret.get_secret_value()

    @property
    def secret_key(self) -> str:
        if self.stripe_secret_key is None:
            raise ConfigurationError(["stripe_secret_key"])
        return self.stripe_secret_key.get_secret_value()

    def missing_fields(self, *, require_secret_key: bool = True) -> list[str]:
        """Names of required settings that are unset."""
        missing = []
        if self.stripe_webhook_secret is None:
            missing.append("stripe_webhook_secret")
        if require_secret_key and self.stripe_secret_key is None:
            missing.append("stripe_secret_key")
        if not self.dynamodb_table_prefix:
            missing.append("dynamodb_table_prefix")
        return missing


def _resolve_ssm_secrets(
    settings: Settings, ssm: SSMService | None, *, require_secret_key: bool = True
) -> Settings:
    """Fill unset Stripe credentials from SSM Parameter Store."""
    prefix = settings.ssm_parameter_prefix
    if not prefix:
        return settings

    wanted = {"stripe_webhook_secret": f"{prefix}/stripe/webhook_secret"}
    if require_secret_key:
        wanted["stripe_secret_key"] = f"{prefix}/stripe/secret_key"
    updates: dict[str, SecretStr] = {}
    for field, parameter in wanted.items():
        if getattr(settings, field) is not None:
            continue
        ssm = ssm or SSMService(region_name=settings.aws_region)
        try:
            updates[field] = SecretStr(ssm.get_parameter(parameter))
        except SSMServiceError as e:
            logger.error("Could not resolve %s from SSM: %s", field, e)
            raise ConfigurationError([field]) from e

    return settings.model_copy(update=updates) if updates else settings


def load_settings(
    ssm: SSMService | None = None,
    *,
    require_secret_key: bool = True,
    **overrides: object,
) -> Settings:
    """Load, resolve and validate settings.

    Args:
        ssm: SSM client used when ``ssm_parameter_prefix`` is set
        require_secret_key: False for components that never call the Stripe API
        **overrides: Explicit values taking precedence over the environment

    Returns:
        Fully populated Settings

    Raises:
        ConfigurationError: If any required value is missing
    """
    settings = Settings(**overrides)  # type: ignore[arg-type]
    settings = _resolve_ssm_secrets(settings, ssm, require_secret_key=require_secret_key)

    missing = settings.missing_fields(require_secret_key=require_secret_key)
    if missing:
        raise ConfigurationError(missing)

    logger.info(
        "Configuration loaded for environment %s (tables: %s)",
        settings.environment,
        settings.dynamodb_table_prefix,
    )
    return settings

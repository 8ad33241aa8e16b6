"""Application configuration loaded from environment variables.

Settings for the record store, session signing, password hashing, token
lifetimes, maintenance cadence, and the outbound email notifier. Uses
pydantic-settings for validation and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "identity_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32

# bcrypt accepts cost factors 4..31
_MIN_BCRYPT_ROUNDS = 4
_MAX_BCRYPT_ROUNDS = 31


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "identity_core"
    database_user: str = "identity_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Sessions
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "identity-core"
    auth_audience: str = "identity-core"
    session_ttl_minutes: int = 60

    # Credentials and tokens
    bcrypt_rounds: int = 12
    reset_token_ttl_minutes: int = 60

    # Maintenance
    maintenance_enabled: bool = True
    unverified_retention_hours: int = 24
    purge_unverified_interval_seconds: int = 24 * 60 * 60
    purge_reset_tokens_interval_seconds: int = 6 * 60 * 60
    status_log_interval_seconds: int = 60 * 60

    # Email notifier
    email_from: str = "noreply@identity-core.local"
    resend_api_key: SecretStr = SecretStr("")
    frontend_url: str = "http://localhost:3000"
    # None = strict only in production. Strict surfaces registration email
    # failures to the caller instead of logging them.
    notifier_strict: bool | None = None

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def strict_notifications(self) -> bool:
        """Whether registration must fail when the verification email fails."""
        if self.notifier_strict is not None:
            return self.notifier_strict
        return self.environment == "production"

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate security requirements.

        Checks:
        - bcrypt cost factor within the range bcrypt accepts (all environments)
        - Token and session lifetimes are positive (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if not _MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= _MAX_BCRYPT_ROUNDS:
            msg = (
                f"BCRYPT_ROUNDS must be between {_MIN_BCRYPT_ROUNDS} and "
                f"{_MAX_BCRYPT_ROUNDS}. Got: {self.bcrypt_rounds}"
            )
            raise ValueError(msg)

        if self.session_ttl_minutes <= 0 or self.reset_token_ttl_minutes <= 0:
            msg = "SESSION_TTL_MINUTES and RESET_TOKEN_TTL_MINUTES must be positive."
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

        return self


settings = Settings()

"""Application configuration loaded from environment variables.

Settings for database, CORS, authentication, admin access, and the token
ledger. Uses pydantic-settings for validation and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "reelforge_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    # DATABASE_URL_OVERRIDE (if set) wins over the individual parts below.
    database_url_override: str = ""
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "reelforge"
    database_user: str = "reelforge_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # CORS (Security)
    # Never set to ["*"] when allow_credentials=True
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Authentication
    # Local mode: DEFAULT_USER_ID provides user context without JWT.
    # Hosted mode: auth_enabled=True, JWT from the identity provider required.
    default_user_id: str | None = None
    auth_enabled: bool = False
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "reelforge"
    auth_audience: str = "reelforge"
    auth_cookie_name: str = "__session"

    # Admin dashboard
    admin_dashboard_password: SecretStr = SecretStr("")
    admin_password_delimiter: str = "::"

    # Payment provider callbacks (sent as X-Payment-Webhook-Secret)
    payment_webhook_secret: SecretStr = SecretStr("")

    # Token ledger
    ledger_write_max_retries: int = 5
    token_history_limit: int = 50
    token_info_history_limit: int = 10

    # Token purchase pricing
    token_usd_per_100: float = 0.70
    token_min_purchase: int = 1
    token_max_purchase: int = 100000

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate ledger tuning and production security requirements.

        Checks:
        - Ledger retry count and history limits must be positive
        - Token purchase bounds must be positive and ordered
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars when auth is enabled in production
        - ADMIN_DASHBOARD_PASSWORD must be set in production
        """
        if self.ledger_write_max_retries < 1:
            msg = (
                "LEDGER_WRITE_MAX_RETRIES must be at least 1. "
                f"Got: {self.ledger_write_max_retries}"
            )
            raise ValueError(msg)
        if self.token_history_limit < 1 or self.token_info_history_limit < 1:
            msg = "TOKEN_HISTORY_LIMIT and TOKEN_INFO_HISTORY_LIMIT must be positive."
            raise ValueError(msg)

        if self.token_usd_per_100 <= 0:
            msg = f"TOKEN_USD_PER_100 must be positive. Got: {self.token_usd_per_100}"
            raise ValueError(msg)
        if self.token_min_purchase < 1:
            msg = f"TOKEN_MIN_PURCHASE must be positive. Got: {self.token_min_purchase}"
            raise ValueError(msg)
        if self.token_max_purchase < self.token_min_purchase:
            msg = (
                "TOKEN_MAX_PURCHASE must be greater than or equal to "
                "TOKEN_MIN_PURCHASE."
            )
            raise ValueError(msg)

        # CORS wildcard with credentials is invalid (all environments)
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if (
                not self.database_url_override
                and self.database_password == _INSECURE_DEFAULT_PASSWORD
            ):
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if self.auth_enabled:
                secret_value = self.auth_secret.get_secret_value()
                if not secret_value:
                    msg = (
                        "AUTH_SECRET must be set when AUTH_ENABLED=true in production."
                    )
                    raise ValueError(msg)
                if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                    msg = (
                        f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                        "characters for adequate security."
                    )
                    raise ValueError(msg)

            if not self.admin_dashboard_password.get_secret_value():
                msg = "ADMIN_DASHBOARD_PASSWORD must be set in production."
                raise ValueError(msg)

        return self


settings = Settings()

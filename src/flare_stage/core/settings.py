"""Application settings and configuration.

This module defines all configuration options for the Flare Stage application.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the Flare Stage application.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Flare Stage", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    gatekeeper_password: str = Field(default="flare2024", alias="GATEKEEPER_PASSWORD")
    bcrypt_rounds: int = Field(default=12, alias="BCRYPT_ROUNDS")

    # Database configuration
    database_url: str = Field(default="sqlite:///./flare.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Profile defaults
    default_avatar_url: str = Field(
        default="https://api.dicebear.com/7.x/avataaars/svg?seed={username}",
        alias="DEFAULT_AVATAR_URL",
    )

    # Feed pagination
    posts_page_size: int = Field(default=20, alias="POSTS_PAGE_SIZE")
    max_page_size: int = Field(default=100, alias="MAX_PAGE_SIZE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Demo accounts created on startup (demo, testuser, admin)
    seed_demo_users: bool = Field(default=False, alias="SEED_DEMO_USERS")
    demo_password: str = Field(default="password123", alias="DEMO_PASSWORD")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides.

        Returns:
            The active database URL (test database if in testing mode, otherwise production)
        """
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    def avatar_for(self, username: str) -> str:
        """Return the default avatar URL for a username."""
        return self.default_avatar_url.format(username=username)


settings = Settings()  # type: ignore[call-arg]

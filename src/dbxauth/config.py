"""Client configuration.

``AuthConfig`` holds everything an authorization manager needs to know
about the app it runs in: the app key, the hosts to talk to, and which URL
schemes the host application has registered.
"""

from __future__ import annotations

import os
from locale import getlocale

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from dbxauth.constants import (
    APP_SCHEME_PREFIX,
    CANCEL_PATH,
    DEFAULT_API_HOST,
    DEFAULT_HOST,
    DEFAULT_LOCALE,
    TOKEN_PATH,
    WEB_REDIRECT_HOST,
)
from dbxauth.models.errors import ConfigurationError


class AuthConfig(BaseModel):
    """Configuration for one authorization manager."""

    app_key: str = Field(min_length=1)
    host: str = DEFAULT_HOST
    api_host: str = DEFAULT_API_HOST
    locale: str | None = None

    # Used to scope the secure storage service name
    bundle_id: str = ""

    # URL schemes the host application is registered to open
    registered_url_schemes: list[str] = Field(default_factory=list)

    # URL schemes the host application is allowed to query for
    queries_schemes: list[str] = Field(default_factory=list)

    # Prefix for preference keys, so several managers can share one store
    namespace: str | None = None

    timeout: float = Field(default=30.0, gt=0)

    @field_validator("app_key")
    @classmethod
    def validate_app_key(cls, v: str) -> str:
        if any(c.isspace() for c in v):
            raise ValueError("app_key must not contain whitespace")
        return v

    @property
    def app_scheme(self) -> str:
        return f"{APP_SCHEME_PREFIX}-{self.app_key}"

    @property
    def redirect_url(self) -> str:
        return f"{self.app_scheme}://{WEB_REDIRECT_HOST}{TOKEN_PATH}"

    @property
    def cancel_url(self) -> str:
        return f"{self.app_scheme}://{WEB_REDIRECT_HOST}{CANCEL_PATH}"

    @property
    def storage_namespace(self) -> str:
        return self.namespace or self.app_key

    @property
    def locale_identifier(self) -> str:
        """Locale sent to the server, falling back to the process locale."""
        if self.locale:
            return self.locale
        process_locale, _ = getlocale()
        return process_locale or DEFAULT_LOCALE

    @classmethod
    def from_env(
        cls, prefix: str = "DBXAUTH_", env_file: str | None = None
    ) -> AuthConfig:
        """Load configuration from the environment and an optional .env file.

        Values already set in the environment take precedence over the file.

        Args:
            prefix: Prefix of the environment variable names
            env_file: Path of the .env file; searched from the working
                directory upwards if omitted

        Raises:
            ConfigurationError: If the app key is missing or a value is invalid
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))

        app_key = os.getenv(f"{prefix}APP_KEY")
        if not app_key:
            raise ConfigurationError(f"{prefix}APP_KEY is not set")

        values: dict[str, object] = {"app_key": app_key}
        for name in ("host", "api_host", "locale", "bundle_id", "namespace", "timeout"):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                values[name] = value

        for name, env_name in (
            ("registered_url_schemes", "URL_SCHEMES"),
            ("queries_schemes", "QUERIES_SCHEMES"),
        ):
            value = os.getenv(f"{prefix}{env_name}")
            if value:
                values[name] = [s.strip() for s in value.split(",") if s.strip()]

        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

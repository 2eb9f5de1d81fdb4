"""Configuration module for the Mastodon to Bluesky relay."""

import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from .errors import ConfigError


class Settings(BaseModel):
    """Application settings, read once from environment variables."""

    model_config = ConfigDict(frozen=True)

    # Source network (Mastodon)
    mastodon_token: SecretStr
    mastodon_api_base: str = Field(default="https://mas.to")
    # Watched account; resolved from the token when unset
    mastodon_account_id: Optional[str] = Field(default=None)

    # Destination network (Bluesky)
    bluesky_handle: str = Field(min_length=1)
    bluesky_password: SecretStr
    bluesky_pds_url: str = Field(default="https://bsky.social")

    service_name: str = Field(default="toot-relay")

    # Stream reconnect backoff, seconds
    reconnect_min_delay: float = Field(default=5.0, ge=0)
    reconnect_max_delay: float = Field(default=300.0, ge=0)

    # Lifecycle
    stats_interval: float = Field(default=60.0, gt=0)
    shutdown_grace: float = Field(default=10.0, ge=0)

    # 0 disables the Prometheus exporter
    metrics_port: int = Field(default=0, ge=0, le=65535)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console", pattern="^(console|json)$")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the environment.

        Raises ConfigError naming every required variable that is missing
        and every variable whose value does not validate.
        """
        environ = os.environ if environ is None else environ

        env_mapping = {
            "MASTODON_TOKEN": "mastodon_token",
            "MASTODON_API_BASE": "mastodon_api_base",
            "MASTODON_ACCOUNT_ID": "mastodon_account_id",
            "BLUESKY_HANDLE": "bluesky_handle",
            "BLUESKY_PASSWORD": "bluesky_password",
            "BLUESKY_PDS_URL": "bluesky_pds_url",
            "SERVICE_NAME": "service_name",
            "RECONNECT_MIN_DELAY": "reconnect_min_delay",
            "RECONNECT_MAX_DELAY": "reconnect_max_delay",
            "STATS_INTERVAL": "stats_interval",
            "SHUTDOWN_GRACE": "shutdown_grace",
            "METRICS_PORT": "metrics_port",
            "LOG_LEVEL": "log_level",
            "LOG_FORMAT": "log_format",
        }
        required = ("MASTODON_TOKEN", "BLUESKY_HANDLE", "BLUESKY_PASSWORD")

        missing = [name for name in required if not environ.get(name, "").strip()]
        if missing:
            raise ConfigError(f"missing required environment variables: {', '.join(missing)}")

        values: Dict[str, str] = {}
        for env_var, field_name in env_mapping.items():
            value = environ.get(env_var)
            if value is not None and value.strip():
                values[field_name] = value.strip()

        try:
            settings = cls(**values)
        except ValidationError as e:
            field_to_env = {field: env for env, field in env_mapping.items()}
            bad = sorted({field_to_env.get(str(err["loc"][0]), str(err["loc"][0])) for err in e.errors()})
            raise ConfigError(f"invalid environment variables: {', '.join(bad)}") from e

        if settings.reconnect_max_delay < settings.reconnect_min_delay:
            raise ConfigError("RECONNECT_MAX_DELAY must not be lower than RECONNECT_MIN_DELAY")

        return settings

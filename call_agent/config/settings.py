"""
Environment-backed settings for the call agent.

Values are read from the process environment (after an optional ``.env`` file is
loaded) into a pydantic model. Required credentials are only enforced when
``validate_required`` is called at server startup, so the application object can
be imported without a full environment.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

import dotenv
from pydantic import BaseModel, Field

from call_agent.config.constants import (
    DEFAULT_REALTIME_MODEL,
    INCOMING_CALL_PATH,
    MEDIA_STREAM_PATH,
)

REQUIRED_VARIABLES = [
    "OPENAI_API_KEY",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_PHONE_NUMBER",
    "PUBLIC_DOMAIN",
]


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseModel):
    """Runtime configuration for the server and the call session bridge."""

    openai_api_key: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    public_domain: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 5050
    realtime_model: str = DEFAULT_REALTIME_MODEL

    # Timings for the reconnection window and deferred hang-up
    reconnect_window_seconds: float = Field(default=5.0, ge=0)
    inactivity_threshold_seconds: float = Field(default=3.0, ge=0)
    end_call_delay_seconds: float = Field(default=2.0, ge=0)
    end_call_fallback_seconds: float = Field(default=10.0, ge=0)
    dtmf_pause_seconds: int = Field(default=1, ge=0)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Build settings from an environment mapping (defaults to os.environ)."""
        env = os.environ if environ is None else environ
        values = {
            "openai_api_key": env.get("OPENAI_API_KEY"),
            "twilio_account_sid": env.get("TWILIO_ACCOUNT_SID"),
            "twilio_auth_token": env.get("TWILIO_AUTH_TOKEN"),
            "twilio_phone_number": env.get("TWILIO_PHONE_NUMBER"),
            "public_domain": env.get("PUBLIC_DOMAIN"),
            "host": env.get("HOST", "0.0.0.0"),
            "port": env.get("TWILIO_SERVER_PORT", "5050"),
            "realtime_model": env.get("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL),
        }
        optional_timings = {
            "reconnect_window_seconds": "RECONNECT_WINDOW_SECONDS",
            "inactivity_threshold_seconds": "INACTIVITY_THRESHOLD_SECONDS",
            "end_call_delay_seconds": "END_CALL_DELAY_SECONDS",
            "end_call_fallback_seconds": "END_CALL_FALLBACK_SECONDS",
            "dtmf_pause_seconds": "DTMF_PAUSE_SECONDS",
        }
        for field_name, variable in optional_timings.items():
            if env.get(variable):
                values[field_name] = env[variable]
        return cls(**values)

    def missing_variables(self) -> List[str]:
        """Names of required environment variables that are not set."""
        present = {
            "OPENAI_API_KEY": self.openai_api_key,
            "TWILIO_ACCOUNT_SID": self.twilio_account_sid,
            "TWILIO_AUTH_TOKEN": self.twilio_auth_token,
            "TWILIO_PHONE_NUMBER": self.twilio_phone_number,
            "PUBLIC_DOMAIN": self.public_domain,
        }
        return [name for name in REQUIRED_VARIABLES if not present[name]]

    def validate_required(self) -> "Settings":
        missing = self.missing_variables()
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Please check your .env file and ensure all Twilio configuration is set."
            )
        return self

    @property
    def is_local(self) -> bool:
        return bool(self.public_domain) and "localhost" in self.public_domain

    @property
    def media_stream_url(self) -> str:
        protocol = "ws" if self.is_local else "wss"
        return f"{protocol}://{self.public_domain}{MEDIA_STREAM_PATH}"

    @property
    def incoming_call_url(self) -> str:
        protocol = "http" if self.is_local else "https"
        return f"{protocol}://{self.public_domain}{INCOMING_CALL_PATH}"


def load_settings(env_file: str = ".env") -> Settings:
    """Load a .env file if it exists, then read settings from the environment."""
    env_path = Path(env_file)
    if env_path.exists():
        dotenv.load_dotenv(env_path)
    return Settings.from_env()

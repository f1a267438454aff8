"""Viera Pilot Configuration.

Configuration is loaded from environment variables and .env file.
Copy .env.example to .env and fill in your values.
"""

from functools import lru_cache

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from devices.companion import CompanionIdentity, Credentials

log = structlog.get_logger(__name__)


class Config(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Panasonic TV
    tv_ip: str = ""
    tv_port: int = 55000
    request_timeout: float = 5.0
    polling_interval: int = Field(default=15, ge=1)

    # Apple TV used to power the TV on via HDMI-CEC
    use_apple_tv: bool = False
    apple_tv_identifier: str = ""
    apple_tv_address: str = ""
    apple_tv_name: str = ""
    apple_tv_mrp_credentials: str = ""
    apple_tv_airplay_credentials: str = ""
    apple_tv_companion_credentials: str = ""

    atvremote_timeout: float = 20.0
    atvremote_auto_install: bool = True
    pairing_timeout: float = 30.0
    tuner_key_delay: float = 5.0

    # Where discovered identity and pairing credentials are kept
    state_file: str = "viera_state.json"

    @field_validator("tv_ip", "apple_tv_identifier", "apple_tv_address", mode="before")
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str:
        return (v or "").strip()

    @property
    def apple_tv_identity(self) -> CompanionIdentity:
        return CompanionIdentity(
            identifier=self.apple_tv_identifier, address=self.apple_tv_address
        )

    @property
    def apple_tv_credentials(self) -> Credentials:
        return Credentials(
            mrp=self.apple_tv_mrp_credentials,
            airplay=self.apple_tv_airplay_credentials,
            companion=self.apple_tv_companion_credentials,
        )

    def validate_config(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            List of warning messages for missing or incomplete configuration.
        """
        warnings = []

        if not self.tv_ip:
            warnings.append("No TV IP address configured. Set TV_IP environment variable.")

        if self.use_apple_tv:
            if self.apple_tv_identity.is_empty:
                warnings.append(
                    "USE_APPLE_TV set but APPLE_TV_IDENTIFIER and APPLE_TV_ADDRESS are missing."
                )
            if not self.apple_tv_credentials.can_wake:
                warnings.append("USE_APPLE_TV set but Apple TV is not paired yet.")

        return warnings

    def log_config_status(self) -> None:
        """Log configuration status at startup."""
        warnings = self.validate_config()

        log.info(
            "Configuration loaded",
            tv_ip=self.tv_ip or None,
            polling_interval=self.polling_interval,
            use_apple_tv=self.use_apple_tv,
        )
        if self.use_apple_tv:
            log.info(
                "Apple TV configured",
                name=self.apple_tv_name or None,
                identifier=self.apple_tv_identifier or None,
                address=self.apple_tv_address or None,
            )

        for warning in warnings:
            log.warning(warning)


@lru_cache
def get_config() -> Config:
    return Config()

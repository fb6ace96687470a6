"""Application settings."""

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ocpi_cpo_gateway.domain.access import AccessStatus, Role

COUNTRY_CODE_PATTERN = re.compile(r"^[A-Z]{2}$")
PARTY_ID_PATTERN = re.compile(r"^[A-Z0-9]{3}$")


class AccessTokenSeed(BaseModel):
    """Access token registered with the in-memory identity resolver at startup."""

    token: str = Field(min_length=1)
    country_code: str
    party_id: str
    role: Role = Role.EMSP
    status: AccessStatus = AccessStatus.ALLOWED
    remote_party_id: str | None = None
    versions_url: str | None = None
    remote_access_token: str | None = None


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "OCPI CPO Gateway"
    api_prefix: str = "/ocpi/cpo/2.1.1"
    host: str = "0.0.0.0"
    port: int = 8080
    external_dns_name: str | None = None
    country_code: str = "DE"
    party_id: str = "GEF"
    locations_as_open_data: bool = False
    tariffs_as_open_data: bool = False
    allow_downgrades: bool = False
    command_response_timeout_seconds: int = 15
    partner_timeout_seconds: float = 10.0
    partner_client_cache_size: int = 64
    log_level: str = "INFO"
    access_tokens: list[AccessTokenSeed] = Field(default_factory=list)

    @field_validator("api_prefix", mode="after")
    @classmethod
    def normalize_api_prefix(cls, value: str) -> str:
        """Store the prefix with one leading and no trailing slash."""

        stripped = value.strip().strip("/")
        return f"/{stripped}" if stripped else ""

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        """Accept lower-case level names."""

        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def validate_gateway_settings(self) -> "Settings":
        """Ensure party identifiers and limits are valid."""

        if not COUNTRY_CODE_PATTERN.match(self.country_code):
            raise ValueError("OCPI_CPO_COUNTRY_CODE must be two upper-case letters.")
        if not PARTY_ID_PATTERN.match(self.party_id):
            raise ValueError("OCPI_CPO_PARTY_ID must be three upper-case letters or digits.")
        if self.port < 1:
            raise ValueError("OCPI_CPO_PORT must be >= 1.")
        if self.command_response_timeout_seconds < 1:
            raise ValueError("OCPI_CPO_COMMAND_RESPONSE_TIMEOUT_SECONDS must be >= 1.")
        if self.partner_timeout_seconds <= 0:
            raise ValueError("OCPI_CPO_PARTNER_TIMEOUT_SECONDS must be > 0.")
        if self.partner_client_cache_size < 1:
            raise ValueError("OCPI_CPO_PARTNER_CLIENT_CACHE_SIZE must be >= 1.")
        if self.log_level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"OCPI_CPO_LOG_LEVEL '{self.log_level}' is not a logging level.")
        for seed in self.access_tokens:
            if not COUNTRY_CODE_PATTERN.match(seed.country_code):
                raise ValueError(
                    f"OCPI_CPO_ACCESS_TOKENS entry has an invalid country code "
                    f"'{seed.country_code}'."
                )
            if not PARTY_ID_PATTERN.match(seed.party_id):
                raise ValueError(
                    f"OCPI_CPO_ACCESS_TOKENS entry has an invalid party id '{seed.party_id}'."
                )
        return self

    @property
    def public_base_url(self) -> str:
        """Base URL used in continuation links."""

        if self.external_dns_name:
            return f"https://{self.external_dns_name.strip().rstrip('/')}"
        return f"http://127.0.0.1:{self.port}"

    model_config = SettingsConfigDict(env_prefix="OCPI_CPO_", extra="ignore")


__all__ = ["AccessTokenSeed", "COUNTRY_CODE_PATTERN", "PARTY_ID_PATTERN", "Settings"]

"""sena/config.py

Runtime configuration loaded from environment variables / .env file.
"""

from __future__ import annotations

# Third-Party Libraries
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Local Modules
from sena.client import DEFAULT_BASE_URL, DEFAULT_MODEL
from sena.models import Mode
from sena.store import MirrorConfig


class SenaSettings(BaseSettings):
    """Settings shared by the CLI and the web interface.

    Attributes:
        mistral_api_key: Credential for the completion service.
        completion_base_url: Root of the chat-completions API.
        completion_model: Model identifier sent with every request.
        request_timeout: Transport timeout for completion requests, in seconds.
        data_dir: Directory holding the local durable records.
        mirror_url: Remote mirror project URL. Empty disables the mirror.
        mirror_api_key: Remote mirror key.
        mirror_table: Remote mirror table name.
        default_mode: Conversation mode used when none has been saved.
        log_level: Root logging level for the entry points.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    mistral_api_key: str = Field("", description="Completion service API key.")
    completion_base_url: str = Field(DEFAULT_BASE_URL, description="Chat-completions API root.")
    completion_model: str = Field(DEFAULT_MODEL, description="Completion model identifier.")
    request_timeout: float = Field(60.0, description="Completion request timeout in seconds.")
    data_dir: str = Field("~/.sena", validation_alias="SENA_DATA_DIR")
    mirror_url: str = Field("", description="Remote mirror URL; empty disables it.")
    mirror_api_key: str = Field("", description="Remote mirror API key.")
    mirror_table: str = Field("messages", description="Remote mirror table.")
    default_mode: Mode = Field(Mode.EXPLANATORY, validation_alias="SENA_MODE")
    log_level: str = Field("INFO", description="Logging level for entry points.")

    @field_validator("default_mode", mode="before")
    @classmethod
    def _parse_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return Mode.parse(value)
        return value

    def mirror_config(self) -> MirrorConfig | None:
        """Return mirror settings, or ``None`` when the mirror is not configured."""
        if not (self.mirror_url and self.mirror_api_key):
            return None
        return MirrorConfig(url=self.mirror_url, api_key=self.mirror_api_key, table=self.mirror_table)

from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mindflow.domain.constants import (
    DEFAULT_API_URL,
    DEFAULT_AUTO_SYNC_THRESHOLD,
    DEFAULT_MAX_RETRIES,
    DEFAULT_SWEEP_CONCURRENCY,
    DEFAULT_SWEEP_INTERVAL,
    REQUEST_TIMEOUT,
    TRANSCRIPTION_APIS,
)

CONFIG_DIR = Path.home() / ".config/mindflow"


class AppConfig(BaseSettings):
    """
    Configuration model for mindflow.
    Supports loading from:
    1. Environment variables (MINDFLOW_*)
    2. Config file (~/.config/mindflow/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="MINDFLOW_",
        toml_file=[
            CONFIG_DIR / "config.toml",
            Path.home() / ".mindflow.toml",
        ],
        extra="ignore",
    )

    # Paths
    database_path: Path = Field(default_factory=lambda: CONFIG_DIR / "mindflow.db")
    log_dir: Path = Field(default_factory=lambda: CONFIG_DIR / "logs")
    session_file: Path = Field(default_factory=lambda: CONFIG_DIR / "session.json")

    # Backend
    api_url: str = DEFAULT_API_URL
    supabase_url: str | None = None
    supabase_anon_key: SecretStr | None = None
    access_token: SecretStr | None = None
    request_timeout: float = Field(default=REQUEST_TIMEOUT, gt=0)

    # Sync policy
    auto_sync_enabled: bool = True
    auto_sync_threshold_seconds: float = Field(default=DEFAULT_AUTO_SYNC_THRESHOLD, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1)
    vocabulary_sync_enabled: bool = False

    # Background sweep
    sweep_interval_seconds: float = Field(default=DEFAULT_SWEEP_INTERVAL, gt=0)
    sweep_concurrency: int = Field(default=DEFAULT_SWEEP_CONCURRENCY, ge=1)

    # Capture defaults
    transcription_api: str = "OpenAI"

    verbose: int = 1

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        from pydantic_settings import TomlConfigSettingsSource

        toml_files = [
            CONFIG_DIR / "config.toml",
            Path.home() / ".mindflow.toml",
        ]

        # First existing file wins
        toml_file = next((f for f in toml_files if f.exists()), None)

        # Later sources have lower priority: CLI overrides, then env, then file.
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("database_path", "log_dir", "session_file", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Any:
        if isinstance(v, str) and v == ":memory:":
            return Path(v)
        if isinstance(v, (str, Path)):
            return Path(v).expanduser()
        return v

    @field_validator("api_url", "supabase_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.rstrip("/")

    @field_validator("transcription_api")
    @classmethod
    def known_transcription_api(cls, v: str) -> str:
        if v not in TRANSCRIPTION_APIS:
            raise ValueError(f"transcription_api must be one of {', '.join(TRANSCRIPTION_APIS)}")
        return v

    @model_validator(mode="after")
    def vocabulary_sync_needs_endpoint(self) -> "AppConfig":
        if self.vocabulary_sync_enabled and not self.supabase_url:
            raise ValueError("vocabulary_sync_enabled requires supabase_url")
        return self

    @property
    def in_memory(self) -> bool:
        return str(self.database_path) == ":memory:"


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/mindflow/config.toml (if exists)
    3. Environment variables (MINDFLOW_*)
    4. cli_overrides (passed from Typer)
    """
    # Typer passes every option; unset ones arrive as None and must not mask lower layers.
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)

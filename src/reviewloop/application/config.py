from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from reviewloop.domain.constants import (
    BATCH_SIZE,
    CARD_SYNC_DELAY,
    GENERATION_COOLDOWN_SECONDS,
    MAX_REVIEW_CARDS,
    MIN_CODE_CARDS,
    REQUEST_TIMEOUT,
    RETENTION_DAYS,
    STATE_SYNC_DELAY,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/reviewloop/config.toml",
        Path.home() / ".reviewloop.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for reviewloop.
    Supports loading from:
    1. Environment variables (REVIEWLOOP_*)
    2. Config file (~/.config/reviewloop/config.toml)
    3. Manual overrides (CLI)
    """

    model_config = SettingsConfigDict(
        env_prefix="REVIEWLOOP_",
        extra="ignore",
    )

    # Session
    session_id: str | None = None
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".config/reviewloop")
    seed_deck: Path | None = None

    # Remote endpoints (local JSON file persistence when api_base_url is unset)
    api_base_url: str | None = None
    generation_url: str | None = None
    generation_api_key: str | None = None
    request_timeout: float = REQUEST_TIMEOUT

    # Scheduling / sync tuning
    max_cards: int = Field(default=MAX_REVIEW_CARDS, ge=1)
    retention_days: int = Field(default=RETENTION_DAYS, ge=1)
    generation_cooldown_seconds: float = Field(default=GENERATION_COOLDOWN_SECONDS, ge=0)
    state_sync_delay: float = Field(default=STATE_SYNC_DELAY, ge=0)
    card_sync_delay: float = Field(default=CARD_SYNC_DELAY, ge=0)
    batch_size: int = Field(default=BATCH_SIZE, ge=1)
    min_code_cards: int = Field(default=MIN_CODE_CARDS, ge=0)

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

        # First existing file wins
        toml_file = next((f for f in config_files() if f.exists()), None)

        # Earlier sources take priority: CLI overrides > env > file
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("data_dir", mode="before")
    @classmethod
    def resolve_data_dir(cls, v: Any) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("seed_deck", mode="before")
    @classmethod
    def resolve_seed_deck(cls, v: Any) -> Path | None:
        if v:
            return Path(v).expanduser().resolve()
        return None

    @property
    def has_generation_credentials(self) -> bool:
        return bool(self.generation_url and self.generation_api_key)


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/reviewloop/config.toml (if exists)
    3. Environment variables (REVIEWLOOP_*)
    4. cli_overrides (passed from Typer)

    A missing session id is loaded from, or created in, ``data_dir``.
    """
    from reviewloop.application.id_service import load_or_create_session_id

    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    config = AppConfig(**overrides)

    if config.session_id is None:
        config.session_id = load_or_create_session_id(config.data_dir)

    return config

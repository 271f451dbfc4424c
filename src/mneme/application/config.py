from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from mneme.domain.constants import (
    BATCH_SIZE,
    CONSERVATIVE_SCALE,
    MAX_PARAM_CHANGE,
    MIN_REVIEWS_FOR_OPTIMIZATION,
    OPTIMIZATION_MILESTONES,
    REVIEW_WINDOW,
    STALE_AFTER_DAYS,
)


def config_files() -> list[Path]:
    return [
        Path.home() / ".config/mneme/config.toml",
        Path.home() / ".mneme.toml",
    ]


class AppConfig(BaseSettings):
    """
    Configuration model for mneme.
    Supports loading from:
    1. Environment variables (MNEME_*)
    2. Config file (~/.config/mneme/config.toml)
    3. Manual overrides (CLI / API)
    """

    model_config = SettingsConfigDict(
        env_prefix="MNEME_",
        extra="ignore",
    )

    # Storage
    database_path: Path = Field(
        default_factory=lambda: Path.home() / ".config/mneme/mneme.db"
    )

    # Optimization cadence
    min_reviews: int = Field(default=MIN_REVIEWS_FOR_OPTIMIZATION, ge=1)
    milestones: list[int] = Field(default_factory=lambda: list(OPTIMIZATION_MILESTONES))
    stale_after_days: float = Field(default=STALE_AFTER_DAYS, gt=0)
    review_window: int | None = Field(default=REVIEW_WINDOW, ge=1)

    # Optimizer
    conservative: bool = True
    conservative_scale: float = Field(default=CONSERVATIVE_SCALE, gt=0, le=1)
    max_param_change: float = Field(default=MAX_PARAM_CHANGE, gt=0)
    batch_size: int = Field(default=BATCH_SIZE, ge=1)

    # Server
    host: str = "127.0.0.1"
    port: int = 8777

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

        # Overrides win over env, env wins over the file
        toml_file = next((f for f in config_files() if f.exists()), None)
        if toml_file:
            return (
                init_settings,
                env_settings,
                TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
            )
        return (init_settings, env_settings)

    @field_validator("database_path", mode="before")
    @classmethod
    def resolve_database_path(cls, v: Any) -> Path:
        return Path(v).expanduser()

    @field_validator("milestones", mode="after")
    @classmethod
    def sort_milestones(cls, v: list[int]) -> list[int]:
        return sorted(set(v))


def resolve_config(cli_overrides: dict[str, Any] | None = None) -> AppConfig:
    """
    Multi-layered configuration resolution.
    1. Defaults in AppConfig
    2. ~/.config/mneme/config.toml (if exists)
    3. Environment variables (MNEME_*)
    4. cli_overrides (non-None values only)
    """
    overrides = {k: v for k, v in (cli_overrides or {}).items() if v is not None}
    return AppConfig(**overrides)

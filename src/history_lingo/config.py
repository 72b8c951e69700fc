"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from history_lingo.models.achievement import AchievementDefinition
from history_lingo.storage.document_store import MAX_BATCH_WRITES


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


def _config_dir() -> Path:
    return _find_project_root() / "config"


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _config_dir() / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
        if 'storage' in data:
            flattened['storage_backend'] = data['storage'].get('backend')
            flattened['storage_path'] = data['storage'].get('path')
            flattened['write_batch_size'] = data['storage'].get('write_batch_size')
        if 'scheduler' in data:
            scheduler = data['scheduler']
            flattened['scheduler_enabled'] = scheduler.get('enabled')
            flattened['daily_reset_hour_utc'] = scheduler.get('daily_reset_hour_utc')
            flattened['streak_sweep_minute_utc'] = scheduler.get('streak_sweep_minute_utc')
            flattened['weekly_reset_weekday'] = scheduler.get('weekly_reset_weekday')
        if 'leaderboard' in data:
            flattened['leaderboard_size'] = data['leaderboard'].get('size')
            flattened['leaderboard_interval_hours'] = data['leaderboard'].get('interval_hours')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Authentication (optional: None disables auth)
    app_secret: str | None = Field(default=None)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Storage
    storage_backend: Literal["memory", "json"] = Field(default="json")
    storage_path: Path = Field(default=Path("data") / "history_lingo.json")
    write_batch_size: int = Field(default=MAX_BATCH_WRITES - 1, gt=0, le=MAX_BATCH_WRITES)

    # Scheduler
    scheduler_enabled: bool = Field(default=True)
    daily_reset_hour_utc: int = Field(default=0, ge=0, le=23)
    streak_sweep_minute_utc: int = Field(default=5, ge=0, le=59)
    weekly_reset_weekday: int = Field(default=0, ge=0, le=6)

    # Leaderboard
    leaderboard_size: int = Field(default=100, gt=0)
    leaderboard_interval_hours: float = Field(default=4.0, gt=0)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)

    @property
    def database_path(self) -> Path:
        """Storage file path; relative paths resolve against the project root."""
        path = self.storage_path
        if not path.is_absolute():
            path = self.project_root / path
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def config_dir(self) -> Path:
        return self.project_root / "config"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()


def load_achievements(path: Path | None = None) -> list[AchievementDefinition]:
    """Load the achievement catalog from YAML file."""
    catalog_path = path or _config_dir() / "achievements.yaml"
    if not catalog_path.exists():
        raise FileNotFoundError(f"Achievement catalog not found: {catalog_path}")
    with open(catalog_path, encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    return [AchievementDefinition.model_validate(a) for a in data.get('achievements', [])]


def load_topic_catalog(path: Path | None = None) -> dict:
    """Load the raw topic catalog (categories and default subcategories) from YAML file."""
    catalog_path = path or _config_dir() / "topics.yaml"
    if not catalog_path.exists():
        raise FileNotFoundError(f"Topic catalog not found: {catalog_path}")
    with open(catalog_path, encoding='utf-8') as f:
        return yaml.safe_load(f) or {}

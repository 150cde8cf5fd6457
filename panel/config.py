import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("PANEL_CONFIG", "config.toml")
_ENV_PATH = os.getenv("PANEL_ENV", ".env")


class DaemonSettings(BaseModel):
    # Daemons live on a private network; nothing here should exceed a few seconds
    connect_timeout: float = 3.0
    timeout: float = 3.0
    status_timeout: float = 1.0
    status_cache_seconds: int = 60
    ip_cache_seconds: int = 60 * 60


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
    )

    database_url: str = "sqlite:///panel.db"
    master_token: str
    app_key: str
    app_url: str = "http://localhost:8000"
    daemon: DaemonSettings = Field(default_factory=DaemonSettings)
    rebuild_concurrency: int = 4

    host: str = "0.0.0.0"
    port: int = 8000
    logs_dir: Path = Field(default=Path("logs"))

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()  # type: ignore We want the app to fail if the settings are not loaded correctly

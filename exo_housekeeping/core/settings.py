from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="EXO Housekeeping", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    powershell_executable: str = Field(default="pwsh", alias="POWERSHELL_EXECUTABLE")
    exchange_connect_command: str | None = Field(default=None, alias="EXCHANGE_CONNECT_COMMAND")
    command_timeout_s: int = Field(default=300, alias="COMMAND_TIMEOUT_S")
    report_dir: str = Field(default="reports", alias="REPORT_DIR")
    nickname_suffix_seed: int | None = Field(default=None, alias="NICKNAME_SUFFIX_SEED")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

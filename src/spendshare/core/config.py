from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # App
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Data Paths
    # Default to a 'data' folder in the project root if not specified
    DATA_DIR: Path = Path("data")

    # SPENDSHARE_DATABASE_URL wins over the sqlite file under DATA_DIR
    DATABASE_URL_OVERRIDE: Optional[str] = Field(default=None, validation_alias="SPENDSHARE_DATABASE_URL")

    # All daily budget windows are computed in this zone
    REFERENCE_TIMEZONE: str = "Asia/Kolkata"

    # Events kept per scope for replay by late subscribers
    EVENT_HISTORY_SIZE: int = 256

    @property
    def DB_DIR(self) -> Path:
        return self.DATA_DIR / "db"

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        # Ensure db directory exists
        self.DB_DIR.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{self.DB_DIR}/spendshare.db"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SPENDSHARE_",
        extra="ignore"
    )

settings = Settings()

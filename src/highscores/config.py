"""Runtime configuration for high scores service."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Storage and concurrency settings, read from the environment."""

    scores_file: Path = Field(
        default=Path("scores.json"),
        validation_alias="HIGHSCORES_FILE",
        description="Local JSON file holding all scores",
    )
    scores_bucket: str | None = Field(
        default=None,
        validation_alias="HIGHSCORES_BUCKET",
        description="S3 bucket; when set, scores are kept in S3",
    )
    scores_key: str = Field(
        default="highscores/scores.json",
        min_length=1,
        validation_alias="HIGHSCORES_KEY",
    )
    region: str = Field(default="us-east-1", validation_alias="AWS_DEFAULT_REGION")
    lock_timeout: float = Field(
        default=10.0,
        gt=0,
        validation_alias="HIGHSCORES_LOCK_TIMEOUT",
        description="Seconds to wait for the writer lock",
    )
    storage_timeout: float = Field(
        default=5.0,
        gt=0,
        validation_alias="HIGHSCORES_STORAGE_TIMEOUT",
        description="Seconds before a storage call is abandoned",
    )
    write_attempts: int = Field(
        default=5,
        ge=1,
        validation_alias="HIGHSCORES_WRITE_ATTEMPTS",
        description="Attempts at a read-modify-write cycle before giving up on conflicts",
    )

    model_config = SettingsConfigDict(
        populate_by_name=True, env_ignore_empty=True, extra="ignore"
    )

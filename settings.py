import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    default_locale: str = "en-US"
    default_currency: str = "USD"
    max_nesting_depth: int = 16
    json_chunk_size: int = 100
    pretty_print: bool = False
    log_level: str = "INFO"
    design_path: Path = Path("./design.yaml")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="RPL_",
        env_file_encoding="utf-8",
    )

    @field_validator("max_nesting_depth")
    @classmethod
    def depth_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_nesting_depth must be at least 1")
        return v

    @field_validator("json_chunk_size")
    @classmethod
    def chunk_size_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("json_chunk_size must be at least 1")
        return v

    @field_validator("default_currency")
    @classmethod
    def currency_must_be_iso_code(cls, v: str) -> str:
        if len(v) != 3 or not v.isalpha():
            raise ValueError("default_currency must be a three-letter ISO code")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log_level {v!r}")
        return level

    @property
    def numeric_log_level(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]

"""
tinygraph Settings

Store-wide settings: text encoding for load/save and logging setup.
Read from TINYGRAPH_* environment variables, falling back to defaults.
"""

import logging
import os
from typing import Literal, Optional

from pydantic import BaseModel, Field


LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"]


class StoreSettings(BaseModel):
    encoding: str = Field(
        "utf-8", description="Text encoding used to read and write store files.")
    log_level: LogLevel = "WARNING"
    log_format: str = "%(asctime)-20s %(name)-20s %(levelname)-8s: %(message)s"

    @classmethod
    def from_env(cls) -> "StoreSettings":
        """Build settings from the environment (unset variables keep defaults)."""
        values = {}
        encoding = os.getenv("TINYGRAPH_ENCODING")
        if encoding:
            values["encoding"] = encoding
        level = os.getenv("TINYGRAPH_LOG_LEVEL")
        if level:
            values["log_level"] = level.upper()
        fmt = os.getenv("TINYGRAPH_LOG_FORMAT")
        if fmt:
            values["log_format"] = fmt
        return cls(**values)


_default_settings: Optional[StoreSettings] = None


def get_settings() -> StoreSettings:
    """Process-wide settings, read from the environment on first use."""
    global _default_settings
    if _default_settings is None:
        _default_settings = StoreSettings.from_env()
    return _default_settings


def configure_logging(settings: Optional[StoreSettings] = None) -> None:
    """Apply the configured level and format to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
    logging.getLogger("tinygraph").setLevel(settings.log_level)

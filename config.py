"""
Configuration for the Portabella encrypted client.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field

VERSION = "0.4.0"

PRODUCTION_BACKEND_URL = "https://backend.portabella.io"
DEVELOPMENT_BACKEND_URL = "http://localhost:5000"

LOG_HANDLER_NAME = "portabella"


def _default_backend_url() -> str:
    if os.getenv("PORTABELLA_ENV") == "production":
        return PRODUCTION_BACKEND_URL
    return DEVELOPMENT_BACKEND_URL


@dataclass
class Config:
    """Application configuration."""

    # Backend settings
    BACKEND_URL: str = field(
        default_factory=lambda: os.getenv("PORTABELLA_BACKEND_URL", _default_backend_url())
    )
    REQUEST_TIMEOUT: float = 30.0

    # Signed challenges are regenerated once older than this
    SIGNATURE_TTL_SECONDS: int = 240

    # Storage paths
    STORAGE_DIR: Path = field(
        default_factory=lambda: Path(os.getenv("PORTABELLA_HOME", Path.home() / ".portabella"))
    )

    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("PORTABELLA_LOG_LEVEL", "INFO"))

    @property
    def keys_dir(self) -> Path:
        """Directory for the encrypted key pair."""
        path = self.STORAGE_DIR / "keys"
        path.mkdir(parents=True, exist_ok=True)
        return path


def configure_logging(level: str | None = None) -> None:
    """Install the console handler on the root logger once; later calls only change the level."""
    root = logging.getLogger()
    root.setLevel(level or config.LOG_LEVEL)
    if any(h.get_name() == LOG_HANDLER_NAME for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(LOG_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
    root.addHandler(handler)


# Default configuration; collaborators receive values from it explicitly
config = Config()

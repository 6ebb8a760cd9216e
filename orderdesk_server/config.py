"""Configuration loaded from environment variables."""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .models import AuthCredentials

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_CODE = "COGA2024ADMIN"


class Settings(BaseModel):
    """
    Runtime settings.

    Environment variables:
    - ORDERDESK_DATA_FILE: document store file (default ~/.orderdesk_store.json,
      "memory" keeps everything in memory)
    - ORDERDESK_ADMIN_CODE: code required to register an admin
    - ORDERDESK_EMAIL / ORDERDESK_PASSWORD: credentials for automatic sign-in
    - ORDERDESK_LOG_LEVEL: logging level name (default INFO)
    """

    data_file: Optional[str] = Field(
        default_factory=lambda: str(Path.home() / ".orderdesk_store.json"),
        description="Document store file, None for in-memory",
    )
    admin_code: str = Field(default=DEFAULT_ADMIN_CODE, description="Admin registration code")
    email: Optional[str] = Field(None, description="Email for automatic sign-in")
    password: Optional[str] = Field(None, description="Password for automatic sign-in")
    log_level: str = Field(default="INFO", description="Logging level")

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls()
        data_file = os.environ.get("ORDERDESK_DATA_FILE")
        if data_file:
            settings.data_file = None if data_file == "memory" else data_file

        admin_code = os.environ.get("ORDERDESK_ADMIN_CODE")
        if admin_code:
            settings.admin_code = admin_code
        else:
            logger.warning("ORDERDESK_ADMIN_CODE not set, using the default admin registration code")

        settings.email = os.environ.get("ORDERDESK_EMAIL")
        settings.password = os.environ.get("ORDERDESK_PASSWORD")
        settings.log_level = os.environ.get("ORDERDESK_LOG_LEVEL", "INFO").upper()
        return settings

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        """Configured sign-in credentials, None unless both email and password are set."""
        if self.email and self.password:
            return AuthCredentials(email=self.email, password=self.password)
        return None

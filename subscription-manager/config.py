"""
config.py — SubTrack settings

All configuration comes from the environment (optionally a .env file) so no
credentials live in code. Defaults are suitable for local development.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel


class Settings(BaseModel):
    data_dir: Path = Path(".")
    access_password: str = "subtrack"

    # Outgoing mail (reminder emails)
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""

    # Reminder polling
    reminder_interval_minutes: int = 60
    start_scheduler: bool = True

    @property
    def mail_configured(self) -> bool:
        return bool(self.sender_email.strip() and self.sender_password.strip())

    @property
    def profile_file(self) -> Path:
        return self.data_dir / "profile.json"


ENV_FIELDS = {
    "SUBTRACK_DATA_DIR": "data_dir",
    "ACCESS_PASSWORD": "access_password",
    "SMTP_SERVER": "smtp_server",
    "SMTP_PORT": "smtp_port",
    "SENDER_EMAIL": "sender_email",
    "SENDER_PASSWORD": "sender_password",
    "REMINDER_INTERVAL_MINUTES": "reminder_interval_minutes",
    "SUBTRACK_SCHEDULER": "start_scheduler",
}


def load_settings() -> Settings:
    """Build Settings from .env + environment; unset variables keep defaults."""
    load_dotenv()
    values = {}
    for env_name, field in ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is not None and raw.strip():
            values[field] = raw.strip()
    return Settings(**values)

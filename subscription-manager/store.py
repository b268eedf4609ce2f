"""
store.py — SubTrack data + delivery collaborators

File-backed stand-ins for the hosted backend the app talks to:
  EntityStore   list/create/update/delete over Subscription, List and
                PriceHistory records (one JSONL file per entity)
  UserService   the current user's profile (me / update_me), one JSON file
  Mail senders  SMTP delivery, or log-only when SMTP isn't configured

Records go in and come out as plain dicts; callers validate them.
"""

import json
import logging
import secrets
import smtplib
import threading
from datetime import datetime, timezone
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from config import Settings

log = logging.getLogger(__name__)

ENTITY_FILES = {
    "Subscription": "subscriptions.jsonl",
    "List": "lists.jsonl",
    "PriceHistory": "price_history.jsonl",
}


class RecordNotFound(LookupError):
    """No record with the given id exists for the entity."""


class InvalidSort(ValueError):
    """Records can't be ordered by the requested field."""


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


# ── Entity store ──────────────────────────────────────────────────────────────
class EntityStore:
    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self._lock = threading.Lock()

    def _path(self, entity: str) -> Path:
        try:
            return self.data_dir / ENTITY_FILES[entity]
        except KeyError:
            raise KeyError(f"Unknown entity: {entity}") from None

    def _read(self, entity: str) -> list[dict]:
        path = self._path(entity)
        records = []
        if not path.exists():
            return records
        with path.open() as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        records.append(json.loads(line))
                    except json.JSONDecodeError:
                        log.warning(f"Skipping malformed line in {path.name}")
        return records

    def _write(self, entity: str, records: list[dict]):
        path = self._path(entity)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("".join(json.dumps(r) + "\n" for r in records))

    def list(self, entity: str, sort: Optional[str] = None) -> list[dict]:
        """All records of an entity; `sort` is a field name, '-field' for descending."""
        with self._lock:
            records = self._read(entity)
        if sort:
            field = sort.lstrip("-")
            try:
                records.sort(
                    key=lambda r: (r.get(field) is None, r.get(field) if r.get(field) is not None else ""),
                    reverse=sort.startswith("-"),
                )
            except TypeError:
                raise InvalidSort(f"{entity} records hold mixed value types for '{field}'") from None
        return records

    def get(self, entity: str, record_id: str) -> dict:
        for record in self.list(entity):
            if record.get("id") == record_id:
                return record
        raise RecordNotFound(f"{entity} {record_id} not found")

    def create(self, entity: str, data: dict) -> dict:
        record = dict(_jsonable(data))
        record["id"] = secrets.token_hex(8)
        record["created_date"] = datetime.now(timezone.utc).isoformat()
        with self._lock:
            records = self._read(entity)
            records.append(record)
            self._write(entity, records)
        return record

    def update(self, entity: str, record_id: str, data: dict) -> dict:
        changes = {k: _jsonable(v) for k, v in data.items() if k != "id"}
        with self._lock:
            records = self._read(entity)
            for record in records:
                if record.get("id") == record_id:
                    record.update(changes)
                    record["updated_date"] = datetime.now(timezone.utc).isoformat()
                    self._write(entity, records)
                    return record
        raise RecordNotFound(f"{entity} {record_id} not found")

    def delete(self, entity: str, record_id: str):
        with self._lock:
            records = self._read(entity)
            kept = [r for r in records if r.get("id") != record_id]
            if len(kept) == len(records):
                raise RecordNotFound(f"{entity} {record_id} not found")
            self._write(entity, kept)


# ── Current user ──────────────────────────────────────────────────────────────
class UserService:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict:
        if self.path.exists():
            try:
                return json.loads(self.path.read_text())
            except json.JSONDecodeError:
                log.warning(f"Profile file {self.path} is not valid JSON — starting empty.")
        return {}

    def me(self) -> dict:
        with self._lock:
            profile = self._load()
        profile.setdefault("email", "")
        profile.setdefault("notifications", [])
        profile.setdefault("notification_preferences", None)
        return profile

    def update_me(self, **partial) -> dict:
        """Shallow-merge top-level profile keys and persist."""
        with self._lock:
            profile = self._load()
            profile.update({k: _jsonable(v) for k, v in partial.items()})
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(profile, indent=2))
        return profile


# ── Mail ──────────────────────────────────────────────────────────────────────
class SmtpMailSender:
    def __init__(self, server: str, port: int, sender: str, password: str):
        self.server = server
        self.port = port
        self.sender = sender
        self.password = password

    def send_email(self, to: str, subject: str, body: str):
        message = MIMEText(body, "plain")
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject

        with smtplib.SMTP(self.server, self.port, timeout=10) as server:
            server.starttls()
            server.login(self.sender, self.password)
            server.send_message(message)
        log.info(f"Email sent to {to}: {subject}")


class LogMailSender:
    """Used when no SMTP credentials are configured."""

    def send_email(self, to: str, subject: str, body: str):
        log.info(f"[mail disabled] would send to {to}: {subject}")


def build_mail_sender(settings: Settings):
    if settings.mail_configured:
        return SmtpMailSender(
            settings.smtp_server,
            settings.smtp_port,
            settings.sender_email.strip(),
            settings.sender_password.strip(),
        )
    log.warning("SENDER_EMAIL / SENDER_PASSWORD not set — reminder emails will only be logged.")
    return LogMailSender()

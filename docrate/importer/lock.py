"""
System-wide advisory lock for import runs.

The lock is a single JSON record in the settings store shared by every
process. A record older than the TTL counts as abandoned: ``acquire`` takes it
over and ``is_locked`` deletes it lazily. Nothing sweeps expired records in the
background.

Known limitation: a fresh acquire uses the store's conditional ``add`` when it
has one, but taking over an *expired* record is read-then-write and two
processes can race there. The lock is only as strong as the store's write
consistency.
"""

from __future__ import annotations

import enum
import logging
import os
import secrets
import socket
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from docrate.settings_store import SettingsStore, supports_conditional_add

LOCK_KEY = "docrate_import_lock"
DEFAULT_LOCK_TTL_SECONDS = 1800
NO_ACTIVE_IMPORT = "No active import"

logger = logging.getLogger(__name__)


def _log(level: int, message: str) -> None:
    if has_app_context():
        current_app.logger.log(level, message)
    else:
        logger.log(level, message)


def default_owner_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{secrets.token_hex(4)}"


def format_timestamp(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def humanize_elapsed(seconds: float) -> str:
    """Render a duration as ``"5 mins"`` style text."""
    seconds = max(0, int(seconds))
    for unit, size in (("day", 86400), ("hour", 3600), ("min", 60)):
        if seconds >= size:
            count = max(1, round(seconds / size))
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{seconds} sec{'s' if seconds != 1 else ''}"


class LockErrorKind(str, enum.Enum):
    ALREADY_LOCKED = "already_locked"
    LOCK_FAILED = "lock_failed"


@dataclass(frozen=True)
class LockInfo:
    source: str
    acquired_at: float
    owner_id: str

    @classmethod
    def from_record(cls, record: object) -> "LockInfo | None":
        if not isinstance(record, Mapping):
            return None
        try:
            acquired_at = float(record.get("acquired_at") or 0)
        except (TypeError, ValueError):
            acquired_at = 0.0
        return cls(
            source=str(record.get("source") or "unknown"),
            acquired_at=acquired_at,
            owner_id=str(record.get("owner_id") or ""),
        )

    def as_record(self) -> dict:
        return {"source": self.source, "acquired_at": self.acquired_at, "owner_id": self.owner_id}


@dataclass(frozen=True)
class LockResult:
    """Outcome of ``ImportLock.acquire``; truthy only when the lock is held."""

    ok: bool
    kind: LockErrorKind | None = None
    message: str = ""
    info: LockInfo | None = None

    def __bool__(self) -> bool:
        return self.ok


@dataclass(frozen=True)
class LockStatusInfo:
    locked: bool
    message: str
    source: str | None = None
    started: str | None = None
    running_for: int | None = None

    def as_dict(self) -> dict:
        return {
            "locked": self.locked,
            "source": self.source,
            "started": self.started,
            "running_for": self.running_for,
            "message": self.message,
        }


class ImportLock:
    """Advisory single-writer lock over a shared ``SettingsStore``."""

    def __init__(
        self,
        store: SettingsStore,
        *,
        ttl: int = DEFAULT_LOCK_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        owner_id: str | None = None,
        key: str = LOCK_KEY,
    ) -> None:
        if ttl <= 0:
            raise ValueError("Lock TTL must be a positive number of seconds.")
        self.store = store
        self.ttl = ttl
        self.clock = clock
        self.owner_id = owner_id or default_owner_id()
        self.key = key

    def _read(self) -> LockInfo | None:
        return LockInfo.from_record(self.store.get(self.key))

    def _expired(self, info: LockInfo, now: float) -> bool:
        return now - info.acquired_at >= self.ttl

    def acquire(self, source: str = "manual") -> LockResult:
        """Take the lock for ``source``; contention and store faults come back as results."""
        try:
            return self._acquire(source)
        except SQLAlchemyError as exc:
            reason = getattr(exc, "orig", None) or exc
            _log(logging.WARNING, f"Import lock acquisition hit a settings store error: {reason}")
            return LockResult(
                ok=False,
                kind=LockErrorKind.LOCK_FAILED,
                message=f"Failed to acquire import lock: settings store error ({reason}).",
            )

    def _acquire(self, source: str) -> LockResult:
        now = self.clock()
        raw_record = self.store.get(self.key)
        existing = LockInfo.from_record(raw_record)
        if existing is not None and not self._expired(existing, now):
            message = (
                f"Import already running since {format_timestamp(existing.acquired_at)} "
                f"(source: {existing.source}), started {humanize_elapsed(now - existing.acquired_at)} ago. "
                "Please wait."
            )
            return LockResult(ok=False, kind=LockErrorKind.ALREADY_LOCKED, message=message, info=existing)

        info = LockInfo(source=source, acquired_at=now, owner_id=self.owner_id)
        if raw_record is None and supports_conditional_add(self.store):
            if not self.store.add(self.key, info.as_record()):
                return LockResult(
                    ok=False,
                    kind=LockErrorKind.LOCK_FAILED,
                    message="Failed to acquire import lock: another process acquired it first.",
                )
        else:
            if existing is not None:
                _log(logging.INFO, f"Taking over expired import lock held by {existing.owner_id} ({existing.source}).")
            self.store.set(self.key, info.as_record())

        verify = self._read()
        if verify is None or verify.owner_id != self.owner_id:
            return LockResult(
                ok=False,
                kind=LockErrorKind.LOCK_FAILED,
                message="Failed to acquire import lock: ownership could not be verified.",
            )

        _log(logging.INFO, f"Import lock acquired for source {source} by {self.owner_id}.")
        return LockResult(ok=True, info=info)

    def release(self) -> bool:
        """Delete the lock record if this instance still owns it."""
        current = self._read()
        if current is None:
            return False
        if current.owner_id != self.owner_id:
            _log(logging.WARNING, f"Not releasing import lock owned by {current.owner_id}.")
            return False
        released = self.store.delete(self.key)
        if released:
            _log(logging.INFO, f"Import lock released by {self.owner_id}.")
        return released

    def is_locked(self) -> LockInfo | None:
        """Return the live lock, deleting it first if it has expired."""
        info = self._read()
        if info is None:
            return None
        if self._expired(info, self.clock()):
            self.store.delete(self.key)
            return None
        return info

    def force_release(self) -> bool:
        info = self._read()
        if info is None:
            return False
        _log(
            logging.WARNING,
            f"Import lock force released (holder {info.owner_id}, source {info.source}, "
            f"acquired {format_timestamp(info.acquired_at)}).",
        )
        return self.store.delete(self.key)

    def status(self) -> LockStatusInfo:
        info = self.is_locked()
        if info is None:
            return LockStatusInfo(locked=False, message=NO_ACTIVE_IMPORT)
        running_for = int(self.clock() - info.acquired_at)
        return LockStatusInfo(
            locked=True,
            source=info.source,
            started=format_timestamp(info.acquired_at),
            running_for=running_for,
            message=f"Import running from {info.source} (started {humanize_elapsed(running_for)} ago)",
        )

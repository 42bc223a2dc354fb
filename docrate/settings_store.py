"""
Key-value settings store shared by every request-handling process.

The store backs the import lock record and the schema version counter. Two
implementations share one small contract (``get``/``set``/``delete``) plus the
optional conditional write ``add`` ("set if absent"), which callers probe for
with ``supports_conditional_add``.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from docrate.models.base import db
from docrate.models.setting import AppSetting

logger = logging.getLogger(__name__)


@runtime_checkable
class SettingsStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...


def supports_conditional_add(store: SettingsStore) -> bool:
    """Return True when ``store`` offers an atomic set-if-absent write."""
    return callable(getattr(store, "add", None))


class InMemorySettingsStore:
    """Process-local store used by tests and one-off tooling."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = copy.deepcopy(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._values:
            return default
        return copy.deepcopy(self._values[key])

    def set(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    def add(self, key: str, value: Any) -> bool:
        if key in self._values:
            return False
        self._values[key] = copy.deepcopy(value)
        return True

    def delete(self, key: str) -> bool:
        return self._values.pop(key, None) is not None

    def __contains__(self, key: object) -> bool:
        return key in self._values


class DatabaseSettingsStore:
    """
    Settings persisted in the ``app_settings`` table.

    Every write commits immediately so other processes observe it. ``add``
    relies on the unique ``key`` constraint, which makes it a true conditional
    write on any engine that enforces uniqueness.
    """

    def __init__(self, session: Session | None = None) -> None:
        self.session: Session = session or db.session
        self._table_ready = False

    def _ensure_table(self) -> None:
        if self._table_ready:
            return
        AppSetting.__table__.create(bind=self.session.connection(), checkfirst=True)
        self.session.commit()
        self._table_ready = True

    def get(self, key: str, default: Any = None) -> Any:
        self._ensure_table()
        # A short-lived connection keeps the read from pinning a snapshot on
        # the shared session, so later writes and reads see other processes.
        try:
            with self.session.get_bind().connect() as connection:
                row = connection.execute(select(AppSetting.value).where(AppSetting.key == key)).first()
        except SQLAlchemyError as e:
            logger.error(f"Database error reading {key}: {str(e)}")
            raise
        if row is None:
            return default
        return row.value

    def set(self, key: str, value: Any) -> None:
        self._ensure_table()
        try:
            setting = self.session.execute(select(AppSetting).where(AppSetting.key == key)).scalar_one_or_none()
            if setting is None:
                self.session.add(AppSetting(key=key, value=value))
            else:
                setting.value = value
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error setting {key}: {str(e)}")
            raise

    def add(self, key: str, value: Any) -> bool:
        self._ensure_table()
        try:
            self.session.add(AppSetting(key=key, value=value))
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error adding {key}: {str(e)}")
            raise
        return True

    def delete(self, key: str) -> bool:
        self._ensure_table()
        try:
            result = self.session.execute(delete(AppSetting).where(AppSetting.key == key))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Database error deleting {key}: {str(e)}")
            raise
        return bool(result.rowcount)

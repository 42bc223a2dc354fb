# docrate/models/base.py

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc)


class BaseModel(db.Model):
    """Abstract base carrying the creation timestamp shared by every table."""

    __abstract__ = True

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class TimestampMixin:
    """Adds an ``updated_at`` column refreshed on every ORM update."""

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SoftDeleteMixin:
    """
    Business tables are never physically deleted; ``deleted_at`` marks retirement.
    """

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self, when=None):
        if self.deleted_at is None:
            self.deleted_at = when or utcnow()

    def restore(self):
        self.deleted_at = None

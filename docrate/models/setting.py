# docrate/models/setting.py

from .base import db, utcnow


class AppSetting(db.Model):
    """
    Key-value row backing the settings store.

    The table sits outside the migration chain because it holds the schema
    version counter itself; the store creates it on first use.
    """

    __tablename__ = "app_settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(191), unique=True, nullable=False, index=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<AppSetting {self.key}>"

# docrate/models/directory.py
"""
Doctor directory tables.

``doctors`` is the single source of truth for doctor identity; specialties and
insurer arrangements hang off it. ``ai_mappings`` is the normalization lookup
table consulted during import.
"""

import enum

from flask import current_app, has_app_context
from sqlalchemy import Enum, Index, UniqueConstraint, or_, select
from sqlalchemy.exc import SQLAlchemyError

from .base import BaseModel, SoftDeleteMixin, TimestampMixin, db


class Doctor(BaseModel, TimestampMixin, SoftDeleteMixin):
    """A doctor as known across every insurer directory."""

    __tablename__ = "doctors"

    id = db.Column(db.Integer, primary_key=True)
    license_number = db.Column(db.String(50), nullable=True, index=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    email = db.Column(db.String(254), nullable=True)
    city = db.Column(db.String(100), nullable=True, index=True)
    address = db.Column(db.Text, nullable=True)

    specialties = db.relationship("Specialty", back_populates="doctor", order_by="Specialty.id")
    arrangements = db.relationship("Arrangement", back_populates="doctor", order_by="Arrangement.id")

    __table_args__ = (Index("idx_doctors_name", "last_name", "first_name"),)

    def __repr__(self):
        return f"<Doctor {self.id} {self.last_name}>"

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()


class Specialty(BaseModel):
    """A specialty as one insurer spells it, with its normalized form when known."""

    __tablename__ = "specialties"

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False, index=True)
    source_specialty = db.Column(db.String(255), nullable=False)
    normalized_specialty = db.Column(db.String(255), nullable=True, index=True)
    source_company = db.Column(db.String(100), nullable=False, index=True)

    doctor = db.relationship("Doctor", back_populates="specialties")

    def __repr__(self):
        return f"<Specialty {self.source_specialty!r} ({self.source_company})>"


class Arrangement(BaseModel, TimestampMixin, SoftDeleteMixin):
    """Which insurance company has an agreement with which doctor."""

    __tablename__ = "arrangements"

    id = db.Column(db.Integer, primary_key=True)
    doctor_id = db.Column(db.Integer, db.ForeignKey("doctors.id"), nullable=False, index=True)
    insurance_company = db.Column(db.String(100), nullable=False, index=True)
    arrangement_type = db.Column(db.String(100), nullable=True)
    source_file = db.Column(db.String(255), nullable=True)
    import_id = db.Column(db.Integer, db.ForeignKey("import_logs.id"), nullable=True, index=True)
    valid_from = db.Column(db.Date, nullable=True)
    valid_until = db.Column(db.Date, nullable=True)

    doctor = db.relationship("Doctor", back_populates="arrangements")

    def __repr__(self):
        return f"<Arrangement doctor={self.doctor_id} company={self.insurance_company}>"


class MappingType(str, enum.Enum):
    """Kinds of values normalized through ``ai_mappings``."""

    SPECIALTY = "specialty"
    CITY = "city"
    COMPANY = "company"


class AIMapping(BaseModel, TimestampMixin):
    """
    Source value -> normalized value lookup.

    Rows may be proposed with a confidence score; only approved rows or manual
    overrides are used during import.
    """

    __tablename__ = "ai_mappings"

    id = db.Column(db.Integer, primary_key=True)
    mapping_type = db.Column(
        Enum(MappingType, name="ai_mapping_type_enum", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=MappingType.SPECIALTY,
    )
    source_value = db.Column(db.String(255), nullable=False)
    normalized_value = db.Column(db.String(255), nullable=False, index=True)
    confidence = db.Column(db.Numeric(3, 2), nullable=True)
    is_manual_override = db.Column(db.Boolean, nullable=False, default=False, index=True)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (UniqueConstraint("mapping_type", "source_value", name="uq_ai_mappings_type_source"),)

    def __repr__(self):
        return f"<AIMapping {self.mapping_type.value}:{self.source_value!r}>"

    @staticmethod
    def lookup(mapping_type, source_value, session=None):
        """Return the approved normalized value for ``source_value``, or None."""
        if not source_value:
            return None
        session = session or db.session
        mapping_type = MappingType(mapping_type)
        try:
            return session.execute(
                select(AIMapping.normalized_value).where(
                    AIMapping.mapping_type == mapping_type,
                    AIMapping.source_value == source_value,
                    or_(AIMapping.is_manual_override.is_(True), AIMapping.approved_at.is_not(None)),
                )
            ).scalar_one_or_none()
        except SQLAlchemyError as e:
            if has_app_context():
                current_app.logger.error(f"Database error looking up {mapping_type.value} mapping: {str(e)}")
            raise

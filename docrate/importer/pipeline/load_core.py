"""
Upsert helpers that load sanitized rows into the doctor directory tables.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from docrate.models import AIMapping, Arrangement, Doctor, MappingType, Specialty

DOCTOR_COLUMNS = ("license_number", "first_name", "last_name", "phone", "email", "city", "address")

MappingLookup = Callable[[MappingType, str], Optional[str]]


class NaturalKeyKind(str, enum.Enum):
    LICENSE = "license"
    NAME_CITY = "name_city"


@dataclass(frozen=True)
class NaturalKey:
    """Identity of a doctor within and across import runs."""

    kind: NaturalKeyKind
    values: tuple[str, ...]

    def describe(self) -> str:
        if self.kind is NaturalKeyKind.LICENSE:
            return f"license {self.values[0]}"
        return "name/city " + " / ".join(value or "-" for value in self.values)


def natural_key(fields: Mapping[str, str]) -> NaturalKey:
    """License number when present, otherwise first name, last name and city."""
    license_number = fields.get("license_number") or ""
    if license_number:
        return NaturalKey(NaturalKeyKind.LICENSE, (license_number,))
    return NaturalKey(
        NaturalKeyKind.NAME_CITY,
        (fields.get("first_name") or "", fields.get("last_name") or "", fields.get("city") or ""),
    )


class DoctorAction(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass
class DoctorUpsert:
    """Result of upserting one doctor."""

    doctor: Doctor
    action: DoctorAction
    changed_fields: tuple[str, ...] = field(default_factory=tuple)


def _coerce(value: object | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _name_city_query(first_name: str, last_name: str, city: str):
    query = select(Doctor).where(
        Doctor.deleted_at.is_(None),
        Doctor.first_name == first_name,
        Doctor.last_name == last_name,
    )
    if city:
        query = query.where(Doctor.city == city)
    else:
        query = query.where(Doctor.city.is_(None))
    return query.order_by(Doctor.id)


def find_doctor(session: Session, key: NaturalKey, fields: Mapping[str, str] | None = None) -> Doctor | None:
    """
    Look up a non-deleted doctor by natural key.

    A license that matches nobody falls back to an unlicensed doctor with the
    same name and city, so a directory that starts publishing licenses enriches
    the existing record instead of duplicating it.
    """
    if key.kind is NaturalKeyKind.NAME_CITY:
        return session.execute(_name_city_query(*key.values)).scalars().first()

    doctor = (
        session.execute(
            select(Doctor)
            .where(Doctor.deleted_at.is_(None), Doctor.license_number == key.values[0])
            .order_by(Doctor.id)
        )
        .scalars()
        .first()
    )
    if doctor is not None or fields is None:
        return doctor
    fallback = _name_city_query(fields.get("first_name") or "", fields.get("last_name") or "", fields.get("city") or "")
    return session.execute(fallback.where(Doctor.license_number.is_(None))).scalars().first()


def upsert_doctor(session: Session, fields: Mapping[str, str], *, key: NaturalKey | None = None) -> DoctorUpsert:
    """Create the doctor or overwrite its columns with every non-empty incoming value."""
    key = key or natural_key(fields)
    doctor = find_doctor(session, key, fields)

    if doctor is None:
        doctor = Doctor(**{column: _coerce(fields.get(column)) for column in DOCTOR_COLUMNS})
        session.add(doctor)
        session.flush()
        return DoctorUpsert(doctor=doctor, action=DoctorAction.CREATED)

    changed: list[str] = []
    for column in DOCTOR_COLUMNS:
        incoming = _coerce(fields.get(column))
        if incoming is None or getattr(doctor, column) == incoming:
            continue
        setattr(doctor, column, incoming)
        changed.append(column)

    if not changed:
        return DoctorUpsert(doctor=doctor, action=DoctorAction.UNCHANGED)
    session.flush()
    return DoctorUpsert(doctor=doctor, action=DoctorAction.UPDATED, changed_fields=tuple(changed))


def default_mapping_lookup(session: Session) -> MappingLookup:
    def lookup(mapping_type: MappingType, source_value: str) -> Optional[str]:
        return AIMapping.lookup(mapping_type, source_value, session=session)

    return lookup


def attach_specialty(
    session: Session,
    doctor: Doctor,
    source_specialty: str,
    *,
    source_company: str,
    mapping_lookup: MappingLookup,
) -> bool:
    """
    Record the specialty as the insurer spells it.

    Returns True when a specialty row was created or its normalized value changed.
    """
    if not source_specialty:
        return False
    normalized = mapping_lookup(MappingType.SPECIALTY, source_specialty)

    specialty = (
        session.execute(
            select(Specialty).where(
                Specialty.doctor_id == doctor.id,
                Specialty.source_company == source_company,
                Specialty.source_specialty == source_specialty,
            )
        )
        .scalars()
        .first()
    )
    if specialty is None:
        session.add(
            Specialty(
                doctor_id=doctor.id,
                source_specialty=source_specialty,
                normalized_specialty=normalized,
                source_company=source_company,
            )
        )
        session.flush()
        return True
    if normalized and specialty.normalized_specialty != normalized:
        specialty.normalized_specialty = normalized
        session.flush()
        return True
    return False


def upsert_arrangement(
    session: Session,
    doctor: Doctor,
    *,
    insurance_company: str,
    source_file: str | None,
    import_id: int | None,
) -> Arrangement:
    """Keep one live arrangement per doctor and insurer, stamped with the latest import."""
    arrangements = (
        session.execute(
            select(Arrangement)
            .where(Arrangement.doctor_id == doctor.id, Arrangement.insurance_company == insurance_company)
            .order_by(Arrangement.deleted_at.is_not(None), Arrangement.id.desc())
        )
        .scalars()
        .all()
    )
    arrangement = arrangements[0] if arrangements else None
    if arrangement is None:
        arrangement = Arrangement(doctor_id=doctor.id, insurance_company=insurance_company)
        session.add(arrangement)
    elif arrangement.is_deleted:
        arrangement.restore()

    arrangement.source_file = source_file
    arrangement.import_id = import_id
    session.flush()
    return arrangement

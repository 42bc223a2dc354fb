"""Canonical doctor ingest contract.

Insurer directories label the same column in Hebrew or English and with many
spellings. The contract lists every canonical field with its sanitizer type and
the header synonyms that map onto it, and provides helpers for detecting,
loading and applying a column mapping.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence, Tuple

import yaml

ColumnMapping = dict[str, str]


class ColumnMappingError(ValueError):
    """Raised when an explicit column mapping file is invalid."""


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical doctor field."""

    name: str
    description: str
    field_type: str = "text"
    required: bool = False
    synonyms: Tuple[str, ...] = ()


DOCTOR_CANONICAL_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="first_name",
        description="Doctor given name.",
        field_type="name",
        required=True,
        synonyms=("שם פרטי", "first name", "firstname", "שם"),
    ),
    FieldSpec(
        name="last_name",
        description="Doctor family name.",
        field_type="name",
        required=True,
        synonyms=("שם משפחה", "last name", "lastname", "משפחה"),
    ),
    FieldSpec(
        name="license_number",
        description="Medical license number; the preferred natural key.",
        field_type="license",
        synonyms=("מספר רישיון", "רישיון", "license", "license number", "lic"),
    ),
    FieldSpec(
        name="phone",
        description="Clinic or mobile phone number.",
        field_type="phone",
        synonyms=("טלפון", "phone", "tel", "telephone", "נייד", "mobile"),
    ),
    FieldSpec(
        name="email",
        description="Contact email address.",
        field_type="email",
        synonyms=("אימייל", "מייל", "email", "e-mail"),
    ),
    FieldSpec(
        name="city",
        description="City or locality of the clinic.",
        synonyms=("עיר", "city", "ישוב"),
    ),
    FieldSpec(
        name="address",
        description="Street address of the clinic.",
        synonyms=("כתובת", "address", "רחוב"),
    ),
    FieldSpec(
        name="specialty",
        description="Specialty as spelled by the insurer.",
        field_type="specialty",
        synonyms=("התמחות", "specialty", "specialization", "תחום"),
    ),
)

CANONICAL_FIELD_NAMES: Tuple[str, ...] = tuple(field_spec.name for field_spec in DOCTOR_CANONICAL_FIELDS)
DOCTOR_FIELD_TYPES: Mapping[str, str] = {field_spec.name: field_spec.field_type for field_spec in DOCTOR_CANONICAL_FIELDS}
REQUIRED_FIELDS: Tuple[str, ...] = tuple(field_spec.name for field_spec in DOCTOR_CANONICAL_FIELDS if field_spec.required)


def normalize_header(value: object) -> str:
    """Trim and case-fold a header for synonym comparison."""
    return str(value or "").strip().lstrip("\ufeff").lower()


def detect_column_mapping(headers: Sequence[str]) -> ColumnMapping:
    """
    Map canonical fields to source headers using the synonym table.

    For each field the first synonym present among the headers wins. Headers
    that match no synonym are left out of the mapping.
    """
    normalized_headers = [normalize_header(header) for header in headers]
    mapping: ColumnMapping = {}
    for field_spec in DOCTOR_CANONICAL_FIELDS:
        for synonym in field_spec.synonyms:
            token = normalize_header(synonym)
            if token in normalized_headers:
                mapping[field_spec.name] = headers[normalized_headers.index(token)]
                break
    return mapping


def apply_column_mapping(fields: Mapping[str, object], mapping: Mapping[str, str]) -> dict[str, object]:
    """
    Re-key a parsed row by canonical field name.

    Mapped headers are renamed; unmapped headers stay under their original text
    so nothing in the row is silently dropped or reassigned.
    """
    header_to_field = {header: field_name for field_name, header in mapping.items()}
    result: dict[str, object] = {}
    for header, value in fields.items():
        result[header_to_field.get(header, header)] = value
    for field_name, header in mapping.items():
        if header not in fields:
            result.setdefault(field_name, "")
    return result


def missing_required_fields(fields: Mapping[str, object]) -> Tuple[str, ...]:
    return tuple(name for name in REQUIRED_FIELDS if not fields.get(name))


def validate_column_mapping(raw: Mapping[str, object]) -> ColumnMapping:
    """Check an explicit mapping against the canonical field set."""
    mapping: ColumnMapping = {}
    unknown: list[str] = []
    for field_name, header in raw.items():
        field_name = str(field_name).strip()
        if field_name not in CANONICAL_FIELD_NAMES:
            unknown.append(field_name)
            continue
        if header is None or not str(header).strip():
            raise ColumnMappingError(f"Column mapping for '{field_name}' has an empty source header.")
        mapping[field_name] = str(header).strip()
    if unknown:
        raise ColumnMappingError(
            "Unknown canonical fields in column mapping: "
            + ", ".join(sorted(unknown))
            + ". Expected any of: "
            + ", ".join(CANONICAL_FIELD_NAMES)
            + "."
        )
    return mapping


def load_column_mapping(path: str | Path) -> ColumnMapping:
    """
    Load an explicit per-insurer column mapping from YAML or JSON.

    The file holds ``fields: {canonical_field: source header}``.
    """
    path = Path(path)
    if not path.exists():
        raise ColumnMappingError(f"Column mapping file not found at {path}")

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text) or {}
        else:
            raw = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ColumnMappingError(f"Failed to parse column mapping at {path}: {exc}") from exc

    if not isinstance(raw, Mapping) or not isinstance(raw.get("fields"), Mapping):
        raise ColumnMappingError(f"Column mapping at {path} must contain a 'fields' object.")
    return validate_column_mapping(raw["fields"])

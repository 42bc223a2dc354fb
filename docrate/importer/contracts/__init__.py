"""Ingest contracts shared by the parser and the import pipeline."""

from .doctor import (
    CANONICAL_FIELD_NAMES,
    DOCTOR_CANONICAL_FIELDS,
    DOCTOR_FIELD_TYPES,
    REQUIRED_FIELDS,
    ColumnMapping,
    ColumnMappingError,
    FieldSpec,
    apply_column_mapping,
    detect_column_mapping,
    load_column_mapping,
    missing_required_fields,
    normalize_header,
    validate_column_mapping,
)

__all__ = [
    "CANONICAL_FIELD_NAMES",
    "DOCTOR_CANONICAL_FIELDS",
    "DOCTOR_FIELD_TYPES",
    "REQUIRED_FIELDS",
    "ColumnMapping",
    "ColumnMappingError",
    "FieldSpec",
    "apply_column_mapping",
    "detect_column_mapping",
    "load_column_mapping",
    "missing_required_fields",
    "normalize_header",
    "validate_column_mapping",
]

"""
File format registry.

Each parser registers the extensions it decodes here, together with the
optional third-party module it needs. Dispatch looks the extension up instead
of branching on it, so a new format only has to register itself.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from importlib import import_module
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

OPTIONAL_IMPORT_ERRORS: Dict[str, Exception] = {}


@dataclass(frozen=True)
class FormatDescriptor:
    """Metadata describing a registered file format."""

    name: str
    extensions: Tuple[str, ...]
    parse: Callable
    optional_dependency: str | None = None
    spreadsheet: bool = False


_FORMATS: "OrderedDict[str, FormatDescriptor]" = OrderedDict()


def register_format(
    name: str,
    extensions: Tuple[str, ...],
    *,
    optional_dependency: str | None = None,
    spreadsheet: bool = False,
):
    """
    Register the decorated parse function for ``extensions``.

    The function is called as ``parse(path, options)`` and returns a grid of
    stringified cells; the dispatcher handles row extraction.
    """

    def decorator(func: Callable) -> Callable:
        descriptor = FormatDescriptor(
            name=name,
            extensions=tuple(ext.lower().lstrip(".") for ext in extensions),
            parse=func,
            optional_dependency=optional_dependency,
            spreadsheet=spreadsheet,
        )
        for extension in descriptor.extensions:
            _FORMATS[extension] = descriptor
        return func

    return decorator


def resolve_format(path: str | Path) -> Optional[FormatDescriptor]:
    extension = Path(path).suffix.lower().lstrip(".")
    return _FORMATS.get(extension)


def supported_extensions() -> Tuple[str, ...]:
    return tuple(_FORMATS.keys())


def load_optional_dependency(module_name: str):
    """
    Import an optional decoding library, memoising import errors for diagnostics.

    Returns:
        Imported module when available, otherwise ``None``.

    Side effects:
        Stores the latest ImportError in OPTIONAL_IMPORT_ERRORS.
    """
    try:
        module = import_module(module_name)
    except ImportError as exc:
        OPTIONAL_IMPORT_ERRORS[module_name] = exc
        return None

    OPTIONAL_IMPORT_ERRORS.pop(module_name, None)
    return module


def get_optional_dependency_error(module_name: str) -> Optional[Exception]:
    """Return the last import error captured for an optional library, if any."""
    return OPTIONAL_IMPORT_ERRORS.get(module_name)

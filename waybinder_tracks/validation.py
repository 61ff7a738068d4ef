"""Cheap structural pre-filter for uploaded track files.

The checks here never parse the document. Passing validation does not
guarantee the full parse succeeds; parse failures are reported separately
by the format parsers.
"""

from __future__ import annotations

import codecs
import logging
import os
import re

from .config import FIT_MIN_HEADER_BYTES, MAX_UPLOAD_SIZE_BYTES, SUPPORTED_FILE_TYPES
from .errors import ValidationErrorKind
from .models import ValidationResult

LOGGER = logging.getLogger(__name__)

# Root element, optionally namespace-prefixed (`<tcx:TrainingCenterDatabase`).
_ROOT_MARKERS = {
    file_type: re.compile(rf"<(?:[\w.-]+:)?{tag}\b")
    for file_type, tag in (
        ("gpx", "gpx"),
        ("kml", "kml"),
        ("tcx", "TrainingCenterDatabase"),
    )
}


def extension_from_filename(filename: str) -> str:
    """Return the lower-case extension of ``filename`` without the dot."""

    _, ext = os.path.splitext(filename or "")
    return ext.lstrip(".").lower()


def normalise_extension(declared: str | None) -> str:
    """Accept ``gpx``, ``.GPX`` or ``ride.gpx`` and return ``gpx``."""

    value = (declared or "").strip()
    if "." in value:
        value = value.rsplit(".", 1)[-1]
    return value.lower()


def decode_xml_text(file_bytes: bytes) -> str:
    """Decode XML bytes for probing, honouring UTF-16 byte order marks."""

    if file_bytes.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return file_bytes.decode("utf-16", errors="replace")
    return file_bytes.decode("utf-8", errors="replace")


def validate(
    file_bytes: bytes,
    declared_extension: str,
    max_size_bytes: int | None = None,
) -> ValidationResult:
    """Check type, size and a lightweight content probe for an upload."""

    file_type = normalise_extension(declared_extension)
    if file_type not in SUPPORTED_FILE_TYPES:
        return _reject(
            ValidationErrorKind.UNSUPPORTED_FORMAT,
            "Invalid file type. Please upload a GPX, KML, FIT, or TCX file.",
        )

    limit = MAX_UPLOAD_SIZE_BYTES if max_size_bytes is None else max_size_bytes
    size = len(file_bytes)
    if size > limit:
        limit_mib = limit / (1024 * 1024)
        return _reject(
            ValidationErrorKind.SIZE_EXCEEDED,
            f"File size exceeds the maximum limit of {limit_mib:g}MB.",
            file_type=file_type,
            file_size=size,
        )

    if not _probe_content(file_bytes, file_type):
        return _reject(
            ValidationErrorKind.MALFORMED_CONTENT,
            "Invalid file content. The file appears to be corrupted or malformed.",
            file_type=file_type,
            file_size=size,
        )

    return ValidationResult(valid=True, file_type=file_type, file_size=size)


def _probe_content(file_bytes: bytes, file_type: str) -> bool:
    if file_type == "fit":
        return len(file_bytes[:FIT_MIN_HEADER_BYTES]) >= FIT_MIN_HEADER_BYTES
    if not file_bytes:
        return False
    text = decode_xml_text(file_bytes)
    # The root marker implies the document carries markup at all.
    return _ROOT_MARKERS[file_type].search(text) is not None


def _reject(
    kind: ValidationErrorKind,
    message: str,
    *,
    file_type: str | None = None,
    file_size: int | None = None,
) -> ValidationResult:
    LOGGER.info("Rejected upload (%s): %s", kind.value, message)
    return ValidationResult(
        valid=False,
        file_type=file_type,
        file_size=file_size,
        error=message,
        error_kind=kind,
    )

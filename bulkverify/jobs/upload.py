"""CSV upload inspection for bulk lists."""

from bulkverify.config import UPLOAD_MAX_BYTES
from bulkverify.exceptions import InvalidArgumentError


def decode_upload(content: bytes) -> str:
    """Decode uploaded bytes as UTF-8, tolerating a BOM."""
    return content.decode("utf-8-sig", errors="replace")


def count_email_rows(content: bytes) -> int:
    """Estimate the number of addresses in a CSV upload.

    Non-blank lines minus the header line, never below zero.
    """
    lines = [line for line in decode_upload(content).splitlines() if line.strip()]
    return max(0, len(lines) - 1)


def validate_upload(content: bytes | None, max_bytes: int = UPLOAD_MAX_BYTES) -> None:
    """Reject empty and oversized uploads.

    Raises:
        InvalidArgumentError: No content or more than ``max_bytes``
    """
    if not content:
        raise InvalidArgumentError("CSV file is required in 'file' field")
    if len(content) > max_bytes:
        raise InvalidArgumentError(
            f"Upload of {len(content)} bytes exceeds the {max_bytes} byte limit"
        )

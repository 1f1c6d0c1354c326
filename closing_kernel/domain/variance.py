"""
Variance policy.

Pure rules for closing variances and operator-supplied text.  One rule
serves every series; the clinic's 10000 threshold and the medias shop's
zero tolerance are configuration.
"""

from decimal import Decimal

from closing_kernel.exceptions import JustificationRequiredError, NotesRequiredError

JUSTIFICATION_MIN_LENGTH = 10
JUSTIFICATION_MAX_LENGTH = 500
NOTES_MAX_LENGTH = 500


def compute_variance(counted_total: Decimal, computed_total: Decimal) -> Decimal:
    """Counted minus computed.  Negative means cash is missing."""
    return counted_total - computed_total


def requires_justification(variance: Decimal, tolerance: Decimal) -> bool:
    """
    True when the variance exceeds the tolerance in either direction.

    Raises:
        ValueError: If tolerance is negative.
    """
    if tolerance < 0:
        raise ValueError(f"Tolerance must be non-negative, got {tolerance}")
    return abs(variance) > tolerance


def validate_justification(
    text: str | None,
    *,
    field: str = "justification",
    min_length: int = JUSTIFICATION_MIN_LENGTH,
    max_length: int = JUSTIFICATION_MAX_LENGTH,
) -> str:
    """
    Trim and check a justification.

    Returns:
        The trimmed text.

    Raises:
        JustificationRequiredError: Shorter than ``min_length`` after
            trimming, or longer than ``max_length``.
    """
    trimmed = (text or "").strip()
    if len(trimmed) < min_length or len(trimmed) > max_length:
        raise JustificationRequiredError(
            field=field,
            min_length=min_length,
            max_length=max_length,
            actual_length=len(trimmed),
        )
    return trimmed


def validate_notes(notes: str | None, *, max_length: int = NOTES_MAX_LENGTH) -> str:
    """Resolution notes: required, at most ``max_length`` characters."""
    trimmed = (notes or "").strip()
    if not trimmed or len(trimmed) > max_length:
        raise NotesRequiredError(max_length=max_length, actual_length=len(trimmed))
    return trimmed


def optional_text(text: str | None, *, max_length: int = NOTES_MAX_LENGTH) -> str | None:
    """Trim free text; empty becomes None.  Longer than ``max_length`` is truncated."""
    trimmed = (text or "").strip()
    return trimmed[:max_length] or None

"""
Input validation functions for the tracker.

All validation functions follow the pattern:
1. Accept raw user input (string, number, etc.)
2. Normalize/clean the input
3. Validate against business rules
4. Return cleaned value or raise ValidationError
"""

import math
import re

from myiep.core.schemas.entities import GoalStatus, PromptLevel


class ValidationError(Exception):
    """Raised when user input fails validation."""

    pass


# ============================================================================
# Name / Title Validation
# ============================================================================


def _clean_text(value: str | None, *, label: str, max_length: int) -> str:
    if value is None:
        raise ValidationError(f"{label} cannot be empty")

    # Strip and collapse internal whitespace
    cleaned = re.sub(r"\s+", " ", value.strip())

    if cleaned == "":
        raise ValidationError(f"{label} cannot be empty")

    if len(cleaned) > max_length:
        raise ValidationError(f"{label} cannot exceed {max_length} characters")

    return cleaned


def validate_student_name(name: str | None) -> str:
    """
    Validate and normalize student names.

    Handles:
    - Single names: "Minjun"
    - Full names in any script: "김철수"
    - Numbered lists: "1. Minjun" → "Minjun"

    Args:
        name: Raw student name input

    Returns:
        Normalized student name

    Raises:
        ValidationError: If student name is invalid
    """
    cleaned = _clean_text(name, label="Student name", max_length=100)

    # Remove numbering prefix (e.g., "1. Minjun" → "Minjun")
    cleaned = re.sub(r"^\d+\.\s*", "", cleaned)

    # Must contain at least one letter (any script)
    if not any(ch.isalpha() for ch in cleaned):
        raise ValidationError("Student name must contain letters")

    return cleaned


def validate_goal_title(title: str | None) -> str:
    """
    Validate and normalize a goal title.

    Args:
        title: Raw goal title

    Returns:
        Normalized title

    Raises:
        ValidationError: If title is empty or too long
    """
    return _clean_text(title, label="Goal title", max_length=200)


# ============================================================================
# Observation Validation
# ============================================================================


def validate_value(value: float | int | str | None) -> float:
    """
    Validate an observation value (accuracy percentage).

    Args:
        value: Raw value (number or numeric string)

    Returns:
        Value as float in [0, 100]

    Raises:
        ValidationError: If value is missing, not numeric, or out of range
    """
    if value is None or value == "":
        raise ValidationError("Value cannot be empty")

    if isinstance(value, bool):
        raise ValidationError("Value must be a number")

    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError("Value must be a number") from e

    if math.isnan(number) or number < 0 or number > 100:
        raise ValidationError("Value must be between 0 and 100")

    return number


def validate_prompt_level(level: str | PromptLevel | None) -> PromptLevel:
    """Validate a prompt level name (case-insensitive)."""
    if level is None or level == "":
        raise ValidationError("Prompt level cannot be empty")

    if isinstance(level, PromptLevel):
        return level

    try:
        return PromptLevel(level.strip().lower())
    except ValueError as e:
        allowed = ", ".join(p.value for p in PromptLevel)
        raise ValidationError(f"Invalid prompt level (expected one of: {allowed})") from e


def validate_goal_status(status: str | GoalStatus | None) -> GoalStatus:
    """Validate a goal status; empty means in_progress."""
    if status is None or status == "":
        return GoalStatus.IN_PROGRESS

    if isinstance(status, GoalStatus):
        return status

    try:
        return GoalStatus(status.strip().lower())
    except ValueError as e:
        allowed = ", ".join(s.value for s in GoalStatus)
        raise ValidationError(f"Invalid goal status (expected one of: {allowed})") from e


ASSESSMENT_STATUSES = ("good", "neutral", "bad")


def validate_assessment_status(status: str | None) -> str | None:
    """Validate a checklist item rating; None/empty clears the rating."""
    if status is None or status.strip() == "":
        return None

    cleaned = status.strip().lower()
    if cleaned not in ASSESSMENT_STATUSES:
        raise ValidationError(
            f"Invalid assessment status (expected one of: {', '.join(ASSESSMENT_STATUSES)})"
        )
    return cleaned

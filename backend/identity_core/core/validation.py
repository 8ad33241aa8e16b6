"""Input rules shared by the self-service and admin account flows."""

from identity_core.core.errors import ValidationError

MAX_NAME_LENGTH = 100


def clean_display_name(name: str) -> str:
    """Strip a display name and enforce 1..MAX_NAME_LENGTH characters.

    Raises:
        ValidationError: Blank or over-long name.
    """
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Name is required")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must be at most {MAX_NAME_LENGTH} characters")
    return cleaned

"""
Formatting utilities.
"""

import re
from datetime import timedelta
from typing import Iterable


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def format_field_label(field_name: str) -> str:
    """
    Turn a backend field name into a label for user-facing notices.

    Args:
        field_name: Field key such as "ownerEmail" or "bank_name".
            The reserved key "_step" (step-level message) maps to a generic label.

    Returns:
        Human readable label, e.g. "Owner Email", "Bank Name", "Villa ID".
    """
    if not field_name or field_name == "_step":
        return "General Information"

    label = _CAMEL_BOUNDARY.sub(r" \1", field_name).replace("_", " ").strip()
    words = [word[:1].upper() + word[1:] for word in label.split()]
    if words and words[-1] == "Id":
        words[-1] = "ID"
    elif words and words[-1] == "Url":
        words[-1] = "URL"
    return " ".join(words)


def format_label_preview(field_names: Iterable[str], limit: int = 4) -> str:
    """
    Join the labels of the first ``limit`` fields, with an ellipsis when more exist.
    """
    labels = [format_field_label(name) for name in field_names]
    preview = ", ".join(labels[:limit])
    if len(labels) > limit:
        preview += "..."
    return preview


def format_age(age: timedelta) -> str:
    """
    Format a snapshot age for recovery prompts.

    Args:
        age: Elapsed time since the snapshot was written.

    Returns:
        "just now", "N minutes ago" or "N hours ago".
    """
    minutes = int(age.total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 120:
        return f"{minutes} minutes ago"
    return f"{minutes // 60} hours ago"


def format_percent(value: float, decimals: int = 1) -> str:
    """
    Format a number as a percentage.

    Args:
        value: The percentage value.
        decimals: Number of decimal places.

    Returns:
        Formatted percentage string.
    """
    return f"{value:.{decimals}f}%"

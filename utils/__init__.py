"""
Utility modules for the onboarding service.
"""

from .formatting import format_age, format_field_label, format_label_preview, format_percent
from .config import Config
from .logging import OnboardingEventLogger, configure_logging

__all__ = [
    "format_age",
    "format_field_label",
    "format_label_preview",
    "format_percent",
    "Config",
    "OnboardingEventLogger",
    "configure_logging",
]

"""Utility helpers."""

from scoutbot.utils.redaction import SensitiveOutputRedactor
from scoutbot.utils.urls import absolutize, host_of, is_valid_url, normalize_url

__all__ = ["SensitiveOutputRedactor", "absolutize", "host_of", "is_valid_url", "normalize_url"]

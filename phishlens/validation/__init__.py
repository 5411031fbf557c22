"""URL validation and parsing."""

from phishlens.validation.url_parser import ParsedURL, parse_url
from phishlens.validation.url_validator import (
    URLValidationOptions,
    URLValidationResult,
    validate_url,
)

__all__ = [
    "ParsedURL",
    "URLValidationOptions",
    "URLValidationResult",
    "parse_url",
    "validate_url",
]

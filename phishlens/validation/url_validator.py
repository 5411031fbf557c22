"""
URL validation and normalization.

Rejects input that must never reach a signal provider: malicious schemes,
internal addresses and oversized or malformed URLs.
"""

import ipaddress
import logging
import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

logger = logging.getLogger(__name__)

MAX_URL_LENGTH = 2083

DANGEROUS_SCHEME_RE = re.compile(r"^\s*(javascript|data|vbscript|file)\s*:", re.IGNORECASE)
SCHEME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9+.-]*)://")
CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")
LABEL_RE = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")

ALLOWED_SCHEMES = ("http", "https")

LOCAL_HOSTNAMES = {"localhost", "localhost.localdomain"}

# Cloud metadata endpoints
BLOCKED_HOSTNAMES = {
    "metadata.google.internal",
    "metadata.azure.internal",
    "169.254.169.254",
}

TRACKING_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "gclid",
    "dclid",
    "fbclid",
    "msclkid",
    "twclid",
    "_ga",
    "_gl",
}


@dataclass(frozen=True)
class URLValidationOptions:
    allow_private_ips: bool = False
    allow_localhost: bool = False
    max_length: int = MAX_URL_LENGTH


@dataclass(frozen=True)
class URLValidationResult:
    is_valid: bool
    normalized_url: str | None = None
    error: str | None = None
    error_type: str | None = None  # invalid-format, unsupported-protocol, invalid-domain, security-risk, too-long


def _reject(error: str, error_type: str) -> URLValidationResult:
    logger.debug(f"URL rejected ({error_type}): {error}")
    return URLValidationResult(is_valid=False, error=error, error_type=error_type)


def _check_ip(host: str, options: URLValidationOptions) -> URLValidationResult | None:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None

    if ip.is_loopback:
        if not options.allow_localhost:
            return _reject(f"Loopback address not allowed: {host}", "security-risk")
    elif ip.is_private or ip.is_link_local or ip.is_reserved or ip.is_unspecified:
        if not options.allow_private_ips:
            return _reject(f"Private address not allowed: {host}", "security-risk")
    return None


def validate_url(url: str, options: URLValidationOptions | None = None) -> URLValidationResult:
    """
    Validate a URL and return its normalized form.

    A missing scheme defaults to https. Normalization lower-cases scheme
    and host, removes default ports, collapses duplicate slashes, drops
    the fragment and tracking parameters, and sorts the query.
    """
    options = options or URLValidationOptions()

    if not isinstance(url, str) or not url.strip():
        return _reject("URL is required", "invalid-format")

    url = url.strip()
    if len(url) > options.max_length:
        return _reject(f"URL exceeds {options.max_length} characters", "too-long")
    if CONTROL_CHARS_RE.search(url):
        return _reject("URL contains control characters", "security-risk")
    if DANGEROUS_SCHEME_RE.match(url):
        return _reject("URL uses a dangerous scheme", "security-risk")

    match = SCHEME_RE.match(url)
    if match is None:
        url = f"https://{url}"
    elif match.group(1).lower() not in ALLOWED_SCHEMES:
        return _reject(f"Unsupported protocol: {match.group(1)}", "unsupported-protocol")

    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as e:
        return _reject(f"Invalid URL format: {e}", "invalid-format")

    host = (parsed.hostname or "").rstrip(".")
    if not host:
        return _reject("URL is missing a hostname", "invalid-domain")

    if host in BLOCKED_HOSTNAMES and not options.allow_private_ips:
        return _reject(f"Blocked hostname: {host}", "security-risk")

    if host in LOCAL_HOSTNAMES or host.endswith(".localhost"):
        if not options.allow_localhost:
            return _reject(f"Localhost not allowed: {host}", "security-risk")
    else:
        ip_rejection = _check_ip(host, options)
        if ip_rejection is not None:
            return ip_rejection
        if not _is_ip(host):
            try:
                host = host.encode("idna").decode("ascii")
            except UnicodeError:
                return _reject(f"Invalid domain: {host}", "invalid-domain")
            labels = host.split(".")
            if len(labels) < 2 or not all(LABEL_RE.match(label) for label in labels):
                return _reject(f"Invalid domain: {host}", "invalid-domain")
            if labels[-1].isdigit():
                return _reject(f"Invalid domain: {host}", "invalid-domain")

    scheme = parsed.scheme.lower()
    if port and ((scheme == "http" and port == 80) or (scheme == "https" and port == 443)):
        port = None

    netloc = f"[{host}]" if ":" in host else host
    if port:
        netloc = f"{netloc}:{port}"

    path = re.sub(r"/+", "/", parsed.path or "/")
    query = urlencode(
        sorted(
            (k, v)
            for k, v in parse_qsl(parsed.query, keep_blank_values=True)
            if k.lower() not in TRACKING_PARAMS
        )
    )

    normalized = urlunparse((scheme, netloc, path, "", query, ""))
    return URLValidationResult(is_valid=True, normalized_url=normalized)


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True

"""URL decomposition into the parts each signal provider needs."""

import ipaddress
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlparse

import tldextract

from phishlens.exceptions import ValidationError

# Bundled public suffix snapshot only, never fetched at runtime
_extractor = tldextract.TLDExtract(suffix_list_urls=())


@dataclass(frozen=True)
class ParsedURL:
    original: str
    protocol: str
    hostname: str
    domain: str  # registered domain, e.g. example.co.uk
    subdomain: str
    tld: str
    port: int | None
    path: str
    path_parts: list[str] = field(default_factory=list)
    query_params: dict[str, list[str]] = field(default_factory=dict)
    is_ip: bool = False

    @property
    def effective_port(self) -> int:
        if self.port:
            return self.port
        return 443 if self.protocol == "https" else 80


def parse_url(url: str) -> ParsedURL:
    """Split a validated URL into hostname, registered domain and path parts."""
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as e:
        raise ValidationError(f"Cannot parse URL: {e}", "invalid-format") from e

    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise ValidationError("URL is missing a hostname", "invalid-domain")

    try:
        ipaddress.ip_address(hostname)
        is_ip = True
    except ValueError:
        is_ip = False

    if is_ip:
        domain, subdomain, tld = hostname, "", ""
    else:
        extracted = _extractor(hostname)
        tld = extracted.suffix
        subdomain = extracted.subdomain
        domain = (
            f"{extracted.domain}.{extracted.suffix}" if extracted.suffix else extracted.domain
        )

    return ParsedURL(
        original=url,
        protocol=parsed.scheme.lower(),
        hostname=hostname,
        domain=domain,
        subdomain=subdomain,
        tld=tld,
        port=port,
        path=parsed.path or "/",
        path_parts=[p for p in (parsed.path or "").split("/") if p],
        query_params=parse_qs(parsed.query, keep_blank_values=True),
        is_ip=is_ip,
    )

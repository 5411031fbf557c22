"""TLS certificate inspection."""

import asyncio
import logging
import socket
import ssl
from datetime import UTC, datetime
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa
from cryptography.x509.oid import ExtensionOID, NameOID

from phishlens.cache.manager import CacheManager
from phishlens.config import settings
from phishlens.exceptions import ProviderError
from phishlens.providers.models import (
    CertificateSecurity,
    CertificateValidation,
    SSLCertificateAnalysis,
)
from phishlens.providers.protocol import BaseProvider, SignalResult

logger = logging.getLogger(__name__)

# CA/Browser Forum policy identifiers
EV_POLICY = "2.23.140.1.1"
OV_POLICY = "2.23.140.1.2.2"
DV_POLICY = "2.23.140.1.2.1"

# Issuer reputation, as risk adjustments on 0-100
ISSUER_RISK: dict[str, float] = {
    "let's encrypt": 0,
    "zerossl": 5,
    "digicert": -10,
    "sectigo": -5,
    "globalsign": -10,
    "godaddy": -5,
    "entrust": -10,
    "amazon": -5,
    "cloudflare": -5,
    "google trust services": -10,
    "microsoft": -10,
}
UNKNOWN_ISSUER_RISK = 5


def hostname_matches(hostname: str, common_name: str, sans: list[str]) -> bool:
    """Check a hostname against certificate names, with single-label wildcards."""
    hostname = hostname.lower()
    for pattern in [common_name, *sans]:
        pattern = (pattern or "").lower()
        if not pattern:
            continue
        if hostname == pattern:
            return True
        if pattern.startswith("*."):
            suffix = pattern[2:]
            prefix = hostname[: -(len(suffix) + 1)] if hostname.endswith("." + suffix) else ""
            if prefix and "." not in prefix:
                return True
    return False


class TlsCertificateProvider(BaseProvider[SSLCertificateAnalysis]):
    """
    Inspects the certificate served by a host.

    The handshake first runs with full verification to learn whether the
    chain is trusted, then without verification so that broken
    certificates can still be examined. Socket work runs in a thread.
    """

    model = SSLCertificateAnalysis

    def __init__(
        self,
        timeout: float | None = None,
        cache: CacheManager | None = None,
        cache_ttl: float | None = None,
    ):
        super().__init__(cache=cache, cache_ttl=cache_ttl or settings.ssl_cache_ttl)
        self.timeout = timeout or settings.ssl_timeout

    @property
    def name(self) -> str:
        return "ssl"

    async def analyze_certificate(
        self, domain: str, port: int = 443
    ) -> SignalResult[SSLCertificateAnalysis]:
        return await self.analyze(domain, port=port)

    async def _fetch(self, target: str, **options: Any) -> SSLCertificateAnalysis:
        port = int(options.get("port") or 443)
        try:
            cert_info = await self._get_certificate(target, port)
        except (socket.gaierror, socket.herror) as e:
            raise ProviderError(f"DNS resolution failed for {target}: {e}", code="network") from e
        except (TimeoutError, socket.timeout) as e:
            raise ProviderError(f"TLS handshake with {target} timed out", code="timeout", retryable=True) from e
        except ConnectionRefusedError as e:
            raise ProviderError(f"Connection refused by {target}:{port}", code="unavailable") from e
        except ssl.SSLError as e:
            raise ProviderError(f"TLS error from {target}: {e}", code="network") from e
        except OSError as e:
            raise ProviderError(f"Cannot reach {target}:{port}: {e}", code="network", retryable=True) from e

        return self.build_analysis(cert_info, target, port)

    async def _get_certificate(self, hostname: str, port: int) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_certificate, hostname, port)

    @staticmethod
    def verification_context() -> ssl.SSLContext:
        """Context that judges the chain of trust only; hostname matching is scored separately."""
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_REQUIRED
        return context

    def _fetch_certificate(self, hostname: str, port: int) -> dict[str, Any]:
        chain_valid = True
        verify_error = None
        try:
            with socket.create_connection((hostname, port), timeout=self.timeout) as sock:
                with self.verification_context().wrap_socket(sock, server_hostname=hostname):
                    pass
        except ssl.SSLCertVerificationError as e:
            chain_valid = False
            verify_error = e.verify_message

        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

        with socket.create_connection((hostname, port), timeout=self.timeout) as sock:
            with context.wrap_socket(sock, server_hostname=hostname) as ssock:
                der_cert = ssock.getpeercert(binary_form=True)
                protocol_version = ssock.version()

        cert = x509.load_der_x509_certificate(der_cert)
        info = self.extract_certificate_data(cert)
        info.update(
            chain_valid=chain_valid,
            verify_error=verify_error,
            protocol_version=protocol_version,
        )
        return info

    @staticmethod
    def extract_certificate_data(cert: x509.Certificate) -> dict[str, Any]:
        def _attr(name: x509.Name, oid) -> str:
            values = name.get_attributes_for_oid(oid)
            return str(values[0].value) if values else ""

        try:
            sans = [
                str(n)
                for n in cert.extensions.get_extension_for_oid(
                    ExtensionOID.SUBJECT_ALTERNATIVE_NAME
                ).value.get_values_for_type(x509.DNSName)
            ]
        except x509.ExtensionNotFound:
            sans = []

        try:
            policies = [
                p.policy_identifier.dotted_string
                for p in cert.extensions.get_extension_for_oid(
                    ExtensionOID.CERTIFICATE_POLICIES
                ).value
            ]
        except x509.ExtensionNotFound:
            policies = []

        key = cert.public_key()
        if isinstance(key, rsa.RSAPublicKey):
            key_type, key_size = "RSA", key.key_size
        elif isinstance(key, ec.EllipticCurvePublicKey):
            key_type, key_size = "EC", key.curve.key_size
        elif isinstance(key, dsa.DSAPublicKey):
            key_type, key_size = "DSA", key.key_size
        else:
            key_type, key_size = type(key).__name__, None

        hash_algorithm = cert.signature_hash_algorithm
        return {
            "not_before": cert.not_valid_before_utc,
            "not_after": cert.not_valid_after_utc,
            "common_name": _attr(cert.subject, NameOID.COMMON_NAME),
            "subject_org": _attr(cert.subject, NameOID.ORGANIZATION_NAME),
            "issuer_cn": _attr(cert.issuer, NameOID.COMMON_NAME),
            "issuer_org": _attr(cert.issuer, NameOID.ORGANIZATION_NAME),
            "is_self_signed": cert.issuer == cert.subject,
            "sans": sans,
            "policies": policies,
            "key_type": key_type,
            "key_size": key_size,
            "signature_algorithm": hash_algorithm.name if hash_algorithm else None,
        }

    @staticmethod
    def _certificate_type(info: dict[str, Any]) -> str:
        if info.get("is_self_signed"):
            return "self-signed"
        policies = info.get("policies") or []
        if EV_POLICY in policies:
            return "EV"
        if OV_POLICY in policies:
            return "OV"
        if DV_POLICY in policies:
            return "DV"
        return "OV" if info.get("subject_org") else "DV"

    @staticmethod
    def _encryption_strength(info: dict[str, Any]) -> str:
        key_type, key_size = info.get("key_type"), info.get("key_size")
        signature = (info.get("signature_algorithm") or "").lower()
        if signature in ("md5", "sha1"):
            return "weak"
        if key_size is None:
            return "unknown"
        if key_type == "EC":
            return "strong" if key_size >= 256 else "weak"
        if key_size >= 3072:
            return "strong"
        if key_size >= 2048:
            return "moderate"
        return "weak"

    def build_analysis(
        self, info: dict[str, Any], hostname: str, port: int = 443
    ) -> SSLCertificateAnalysis:
        """Score extracted certificate data. Risk is on 0-100."""
        now = datetime.now(UTC)
        not_before: datetime = info["not_before"]
        not_after: datetime = info["not_after"]

        is_expired = not_after < now
        not_yet_valid = not_before > now
        is_self_signed = bool(info.get("is_self_signed"))
        chain_valid = bool(info.get("chain_valid", True)) and not is_self_signed
        domain_match = hostname_matches(hostname, info.get("common_name", ""), info.get("sans", []))
        is_valid = chain_valid and domain_match and not is_expired and not not_yet_valid

        days_until_expiry = (not_after - now).days
        age_days = (now - not_before).days
        strength = self._encryption_strength(info)

        risk = 0.0
        if is_expired:
            risk += 50
        elif not_yet_valid:
            risk += 40
        elif days_until_expiry < 7:
            risk += 10
        if age_days < 7:
            risk += 10
        elif age_days < 30:
            risk += 5
        if is_self_signed:
            risk += 35
        elif not chain_valid:
            risk += 30
        if not domain_match:
            risk += 40
        if strength == "weak":
            risk += 20

        issuer = f"{info.get('issuer_org', '')} {info.get('issuer_cn', '')}".lower()
        if not is_self_signed:
            risk += next(
                (adj for name, adj in ISSUER_RISK.items() if name in issuer),
                UNKNOWN_ISSUER_RISK,
            )

        confidence = 0.8 + (0.1 if chain_valid else 0) + (0.1 if is_valid else 0)

        return SSLCertificateAnalysis(
            domain=hostname,
            port=port,
            certificate_type=self._certificate_type(info),
            issuer=info.get("issuer_org") or info.get("issuer_cn") or None,
            subject=info.get("common_name") or None,
            days_until_expiry=days_until_expiry,
            certificate_age_days=age_days,
            validation=CertificateValidation(
                is_valid=is_valid,
                is_expired=is_expired,
                is_self_signed=is_self_signed,
                domain_match=domain_match,
                chain_valid=chain_valid,
            ),
            security=CertificateSecurity(
                encryption_strength=strength,
                key_size=info.get("key_size"),
                signature_algorithm=info.get("signature_algorithm"),
                protocol_version=info.get("protocol_version"),
            ),
            score=max(0.0, min(100.0, risk)),
            confidence=min(1.0, confidence),
        )

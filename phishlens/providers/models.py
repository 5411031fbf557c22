"""Data returned by each signal provider, on the provider's native scale."""

from datetime import datetime

from pydantic import BaseModel, Field


class ThreatMatch(BaseModel):
    threat_type: str
    platform_type: str = "ANY_PLATFORM"
    threat_entry_type: str = "URL"
    url: str | None = None


class ReputationAnalysis(BaseModel):
    """Reputation lookup. ``score`` is risk on 0-100."""

    is_clean: bool
    threat_matches: list[ThreatMatch] = Field(default_factory=list)
    score: float = Field(..., ge=0, le=100)
    risk_level: str = "low"
    confidence: float = Field(..., ge=0, le=1)
    checked_at: datetime | None = None


class DomainAgeAnalysis(BaseModel):
    """Domain registration age. ``score`` is risk on 0-1."""

    domain: str
    age_in_days: int | None = None
    registration_date: datetime | None = None
    expiration_date: datetime | None = None
    registrar: str | None = None
    privacy_protected: bool = False
    statuses: list[str] = Field(default_factory=list)
    source: str = "rdap"
    score: float = Field(..., ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)


class CertificateValidation(BaseModel):
    is_valid: bool
    is_expired: bool = False
    is_self_signed: bool = False
    domain_match: bool = True
    chain_valid: bool = True


class CertificateSecurity(BaseModel):
    encryption_strength: str = "unknown"  # strong, moderate, weak, unknown
    key_size: int | None = None
    signature_algorithm: str | None = None
    protocol_version: str | None = None


class SSLCertificateAnalysis(BaseModel):
    """TLS certificate inspection. ``score`` is risk on 0-100."""

    domain: str
    port: int = 443
    certificate_type: str = "unknown"  # DV, OV, EV, self-signed, unknown
    issuer: str | None = None
    subject: str | None = None
    days_until_expiry: int | None = None
    certificate_age_days: int | None = None
    validation: CertificateValidation
    security: CertificateSecurity = Field(default_factory=CertificateSecurity)
    score: float = Field(..., ge=0, le=100)
    confidence: float = Field(..., ge=0, le=1)


class AIAnalysisResult(BaseModel):
    """
    Content analysis from a language model.

    ``risk_score`` is risk on 0-100 and ``confidence`` is reported on 0-100,
    unlike every other provider.
    """

    risk_score: float | None = Field(default=None, ge=0, le=100)
    confidence: float = Field(..., ge=0, le=100)
    scam_category: str = "legitimate"
    primary_risks: list[str] = Field(default_factory=list)
    indicators: list[str] = Field(default_factory=list)
    explanation: str = ""
    model: str | None = None

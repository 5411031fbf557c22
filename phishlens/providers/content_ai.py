"""AI content analysis through an OpenAI-compatible chat completions API."""

import json
import logging
import re
from typing import Any

import httpx

from phishlens.cache.manager import CacheManager
from phishlens.config import settings
from phishlens.exceptions import ProviderError, ValidationError
from phishlens.providers.http import create_client, request_json
from phishlens.providers.models import AIAnalysisResult
from phishlens.providers.protocol import BaseProvider, SignalResult
from phishlens.providers.url_patterns import detect_url_patterns
from phishlens.validation.url_parser import parse_url

logger = logging.getLogger(__name__)

PROMPT_VERSION = "2.1"

SCAM_CATEGORIES = {"financial", "phishing", "ecommerce", "social_engineering", "legitimate"}
CATEGORY_ALIASES = {
    "e-commerce": "ecommerce",
    "shopping": "ecommerce",
    "social engineering": "social_engineering",
    "safe": "legitimate",
    "legit": "legitimate",
}

FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

PROMPT_TEMPLATE = """You are an expert cybersecurity analyst specializing in URL-based scam detection.
Analyze the URL below for scam likelihood using pattern recognition and the technical context.

URL: {url}
Domain: {domain}
Path: {path}
Parameters: {parameters}
Technical Context: {context}
Pattern Analysis: {patterns}

Evaluate:
1. Domain trust: brand look-alikes, suspicious TLDs, subdomain abuse.
2. URL structure: credential harvesting paths, urgency wording, obfuscation, open redirects.
3. Scam patterns: financial, phishing, ecommerce, social engineering.
4. Legitimacy indicators: established domains, official company or platform domains.

Scoring: 0-20 legitimate, 21-40 likely legitimate, 41-60 uncertain,
61-80 probable scam, 81-100 definite scam.

Respond ONLY with valid JSON in this exact format:
{{
  "risk_score": <integer 0-100>,
  "confidence": <integer 0-100>,
  "primary_risks": ["<risk>"],
  "scam_category": "<financial|phishing|ecommerce|social_engineering|legitimate>",
  "indicators": ["<indicator>"],
  "explanation": "<1-2 sentences>"
}}

Be conservative with legitimate services and lower the confidence for borderline cases."""


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item).strip() for item in value if item is not None and str(item).strip()]
    return [str(value)]


def _clamp_number(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(100.0, number))


def _confidence_percent(value: Any) -> float:
    """Confidence on 0-100; fractional answers below 1 are read as 0-1."""
    confidence = _clamp_number(value, 50.0)
    if 0 < confidence < 1:
        confidence *= 100
    return confidence


def describe_patterns(patterns: dict[str, Any] | None) -> str:
    if not patterns:
        return "not available"
    detected = ", ".join(patterns.get("detected_patterns") or []) or "none"
    described = f"suspicious score {patterns.get('suspicious_score', 0)}/100; detected: {detected}"
    impersonation = patterns.get("brand_impersonation")
    if impersonation:
        described += (
            f"; possible impersonation of {impersonation['likely_target']}"
            f" (similarity {impersonation['confidence']:.2f})"
        )
    return described


def build_prompt(url: str, context: dict[str, Any] | None = None) -> str:
    context = context or {}
    described = " | ".join(
        f"{k}: {v}"
        for k, v in sorted(context.items())
        if k not in ("parameters", "pattern_analysis")
    )
    return PROMPT_TEMPLATE.format(
        url=url,
        domain=context.get("domain", "unknown"),
        path=context.get("path", "/"),
        parameters=json.dumps(context.get("parameters", {}), sort_keys=True),
        context=described or "none",
        patterns=describe_patterns(context.get("pattern_analysis")),
    )


def pattern_analysis_for(url: str, context: dict[str, Any] | None) -> dict[str, Any] | None:
    """Pattern analysis from the caller's context, or computed from the URL."""
    if context and context.get("pattern_analysis") is not None:
        return context["pattern_analysis"]
    try:
        return detect_url_patterns(url, parse_url(url)).to_dict()
    except ValidationError as e:
        logger.debug(f"Skipping pattern analysis for {url}: {e}")
        return None


def parse_model_output(content: str, model: str | None = None) -> AIAnalysisResult:
    """Decode and clamp the model's JSON answer."""
    text = FENCE_RE.sub("", content.strip())
    try:
        raw = json.loads(text)
    except ValueError as e:
        raise ProviderError("AI response is not valid JSON", code="parsing") from e
    if not isinstance(raw, dict):
        raise ProviderError("AI response is not a JSON object", code="parsing")

    category = str(raw.get("scam_category") or "legitimate").strip().lower()
    category = CATEGORY_ALIASES.get(category, category)
    if category not in SCAM_CATEGORIES:
        category = "other"

    risk_score = raw.get("risk_score")
    return AIAnalysisResult(
        risk_score=_clamp_number(risk_score, 50.0) if risk_score is not None else None,
        confidence=_confidence_percent(raw.get("confidence")),
        scam_category=category,
        primary_risks=_as_str_list(raw.get("primary_risks")),
        indicators=_as_str_list(raw.get("indicators")),
        explanation=str(raw.get("explanation") or "").strip(),
        model=model,
    )


class ContentAnalysisProvider(BaseProvider[AIAnalysisResult]):
    """
    Asks a language model to judge a URL.

    Confidence comes back on 0-100 and is left that way here; the scoring
    layer converts it.
    """

    model = AIAnalysisResult

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model_name: str | None = None,
        client: httpx.AsyncClient | None = None,
        cache: CacheManager | None = None,
        cache_ttl: float | None = None,
    ):
        super().__init__(cache=cache, cache_ttl=cache_ttl or settings.ai_cache_ttl)
        self.api_key = api_key if api_key is not None else settings.ai_api_key
        self.base_url = (base_url or settings.ai_base_url).rstrip("/")
        self.model_name = model_name or settings.ai_model
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "ai"

    @property
    def version(self) -> str:
        return PROMPT_VERSION

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = create_client(settings.ai_timeout)
        return self._client

    async def analyze_url(
        self, url: str, context: dict[str, Any] | None = None
    ) -> SignalResult[AIAnalysisResult]:
        return await self.analyze(url, context=context)

    def cache_key(self, target: str, **options: Any) -> str:
        # context and pattern analysis both follow from the URL; one answer per URL and prompt version
        return f"{target.lower()}:v{PROMPT_VERSION}"

    async def _fetch(self, target: str, **options: Any) -> AIAnalysisResult:
        if not self.api_key:
            raise ProviderError("AI API key is not configured", code="auth")

        context = dict(options.get("context") or {})
        patterns = pattern_analysis_for(target, context)
        context["pattern_analysis"] = patterns

        data = await request_json(
            self.client,
            "POST",
            f"{self.base_url}/chat/completions",
            "ai",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model_name,
                "temperature": 0.1,
                "response_format": {"type": "json_object"},
                "messages": [
                    {"role": "system", "content": build_prompt(target, context)},
                    {"role": "user", "content": f"Analyze this URL: {target}"},
                ],
            },
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("AI response has no message content", code="parsing") from e

        result = parse_model_output(content, model=data.get("model", self.model_name))
        if patterns:
            merged = list(dict.fromkeys(result.indicators + patterns["detected_patterns"]))
            result = result.model_copy(update={"indicators": merged})
        return result

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

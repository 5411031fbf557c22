"""Analysis orchestrator: fan out to signal providers, then score."""

import asyncio
import dataclasses
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from tenacity import (
    AsyncRetrying,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from phishlens.exceptions import ConfigurationError, InsufficientDataError, ValidationError
from phishlens.metrics import ANALYSIS_DURATION, FALLBACK_COUNT, PROVIDER_CALLS
from phishlens.providers.protocol import ErrorInfo, SignalResult
from phishlens.providers.url_patterns import detect_url_patterns
from phishlens.scoring.calculator import ScoringCalculator, create_fallback_result
from phishlens.scoring.models import RiskFactorType, ScoringInput, ScoringResult
from phishlens.validation.url_parser import ParsedURL, parse_url
from phishlens.validation.url_validator import URLValidationResult, validate_url

logger = logging.getLogger(__name__)

# Service key -> the risk factor it feeds, in ScoringInput field order
SERVICE_FACTORS: dict[str, RiskFactorType] = {
    "reputation": RiskFactorType.REPUTATION,
    "whois": RiskFactorType.DOMAIN_AGE,
    "ssl": RiskFactorType.SSL_CERTIFICATE,
    "ai": RiskFactorType.AI_ANALYSIS,
}

RECENT_ANALYSES = 10


class AnalysisState(str, Enum):
    VALIDATING = "validating"
    PARSING_URL = "parsing_url"
    FETCHING_SIGNALS = "fetching_signals"
    SCORING = "scoring"
    DONE = "done"
    FAILED = "failed"


@dataclass
class OrchestrationConfig:
    """Orchestration knobs. Timeouts are in milliseconds."""

    service_timeout_ms: int = 30000
    total_analysis_timeout_ms: int = 60000
    parallel_execution: bool = True
    minimum_required_services: int = 2
    retry_failed_services: bool = False
    max_retries: int = 1
    retry_wait_ms: int = 250
    caching_enabled: bool = True
    history_size: int = 100

    @classmethod
    def from_settings(cls, settings) -> "OrchestrationConfig":
        return cls(
            service_timeout_ms=settings.service_timeout_ms,
            total_analysis_timeout_ms=settings.total_analysis_timeout_ms,
            parallel_execution=settings.parallel_execution,
            minimum_required_services=settings.minimum_required_services,
            retry_failed_services=settings.retry_failed_services,
            max_retries=settings.max_retries,
            caching_enabled=settings.cache_backend != "none",
            history_size=settings.history_size,
        )

    def validate(self) -> list[str]:
        errors = []
        if self.service_timeout_ms <= 0:
            errors.append("service_timeout_ms must be positive")
        if self.total_analysis_timeout_ms <= 0:
            errors.append("total_analysis_timeout_ms must be positive")
        if self.minimum_required_services < 0:
            errors.append("minimum_required_services cannot be negative")
        if self.max_retries < 0:
            errors.append("max_retries cannot be negative")
        if self.retry_wait_ms < 0:
            errors.append("retry_wait_ms cannot be negative")
        if self.history_size < 1:
            errors.append("history_size must be at least 1")
        return errors


@dataclass
class SignalProviders:
    """
    The provider instances an orchestrator talks to. Any may be None.

    reputation: ``analyze_url(url)``; whois: ``analyze_domain(domain)``;
    ssl: ``analyze_certificate(domain, port=...)``; ai:
    ``analyze_url(url, context=...)``. Each returns a SignalResult and may
    offer ``clear_cache(target=None, **options)`` and ``aclose()``.
    """

    reputation: Any = None
    whois: Any = None
    ssl: Any = None
    ai: Any = None

    def configured(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in SERVICE_FACTORS if getattr(self, key) is not None}


@dataclass(frozen=True)
class ServiceOutcome:
    success: bool
    processing_time_ms: float
    from_cache: bool = False
    attempts: int = 0
    error: ErrorInfo | None = None


@dataclass(frozen=True)
class OrchestrationMetrics:
    total_processing_time_ms: float
    services_executed: int
    services_succeeded: int
    services_failed: int
    parallel_execution: bool
    caching_enabled: bool
    final_state: AnalysisState
    timed_out: bool = False


@dataclass(frozen=True)
class OrchestrationResult:
    url: str
    scoring: ScoringResult
    service_results: dict[str, ServiceOutcome]
    orchestration_metrics: OrchestrationMetrics
    normalized_url: str | None = None
    validation_error: str | None = None
    validation_error_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "normalized_url": self.normalized_url,
            "scoring": self.scoring.to_dict(),
            "service_results": {
                key: dataclasses.asdict(outcome) for key, outcome in self.service_results.items()
            },
            "orchestration_metrics": {
                **dataclasses.asdict(self.orchestration_metrics),
                "final_state": self.orchestration_metrics.final_state.value,
            },
            "validation_error": self.validation_error,
            "validation_error_type": self.validation_error_type,
        }


@dataclass(frozen=True)
class AnalysisRecord:
    url: str
    timestamp: str
    final_score: float
    risk_level: str
    confidence: float
    processing_time_ms: float
    services_executed: int
    services_succeeded: int
    factors_available: list[str] = field(default_factory=list)
    fallback: bool = False


@dataclass
class _Call:
    key: str
    invoke: Callable[[], Awaitable[SignalResult]]
    refresh: Callable[[], Awaitable[None]] | None


class AnalysisOrchestrator:
    """
    Coordinates one URL analysis from validation to final score.

    One provider failing never prevents the others from being used. Every
    call to ``analyze_url`` returns a well-formed result within the total
    timeout: when too few signals arrive, or time runs out, the fixed
    fallback result is returned instead of raising.
    """

    def __init__(
        self,
        providers: SignalProviders,
        config: OrchestrationConfig | None = None,
        scoring_calculator: ScoringCalculator | None = None,
        validator: Callable[[str], URLValidationResult] = validate_url,
        parser: Callable[[str], ParsedURL] = parse_url,
    ):
        self.providers = providers
        self.config = config or OrchestrationConfig()
        errors = self.config.validate()
        if errors:
            raise ConfigurationError(errors)

        self.scoring_calculator = scoring_calculator or ScoringCalculator()
        self._validate = validator
        self._parse = parser
        self._history: deque[AnalysisRecord] = deque(maxlen=self.config.history_size)

    async def analyze_url(
        self,
        url: str,
        *,
        force_refresh: bool = False,
        experiment_id: str | None = None,
        user_id: str | None = None,
    ) -> OrchestrationResult:
        start_time = time.perf_counter()
        services = self.providers.configured()

        # Validating
        validation = self._validate(url)
        if not validation.is_valid:
            logger.info(f"Rejected URL {url!r}: {validation.error}")
            return self._rejected(url, services, validation.error, validation.error_type, start_time)

        # ParsingURL
        try:
            parsed = self._parse(validation.normalized_url)
        except ValidationError as e:
            logger.info(f"Could not parse URL {url!r}: {e}")
            return self._rejected(url, services, str(e), e.error_type, start_time)

        outcomes: dict[str, ServiceOutcome] = {}
        signals: dict[str, SignalResult] = {}
        timed_out = False
        state = AnalysisState.FETCHING_SIGNALS

        try:
            scoring = await asyncio.wait_for(
                self._fetch_and_score(
                    parsed,
                    validation.normalized_url,
                    outcomes,
                    signals,
                    force_refresh or not self.config.caching_enabled,
                    experiment_id,
                    user_id,
                ),
                timeout=self.config.total_analysis_timeout_ms / 1000,
            )
            state = AnalysisState.DONE
        except TimeoutError:
            timed_out = True
            logger.warning(
                f"Analysis of {url} exceeded {self.config.total_analysis_timeout_ms} ms, "
                "returning fallback"
            )
            for key in services:
                outcomes.setdefault(
                    key,
                    ServiceOutcome(
                        success=False,
                        processing_time_ms=self.config.total_analysis_timeout_ms,
                        error=ErrorInfo("timeout", "Total analysis timeout exceeded", True),
                    ),
                )
            scoring = self._fallback(url, "Analysis timed out", start_time, "timeout")
            state = AnalysisState.DONE
        except InsufficientDataError as e:
            logger.warning(f"{url}: {e}")
            scoring = self._fallback(url, str(e), start_time, "insufficient_data")
            state = AnalysisState.DONE

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        succeeded = sum(1 for o in outcomes.values() if o.success)
        result = OrchestrationResult(
            url=url,
            normalized_url=validation.normalized_url,
            scoring=scoring,
            service_results=dict(sorted(outcomes.items(), key=lambda kv: list(SERVICE_FACTORS).index(kv[0]))),
            orchestration_metrics=OrchestrationMetrics(
                total_processing_time_ms=round(elapsed_ms, 2),
                services_executed=len(services),
                services_succeeded=succeeded,
                services_failed=len(services) - succeeded,
                parallel_execution=self.config.parallel_execution,
                caching_enabled=self.config.caching_enabled,
                final_state=state,
                timed_out=timed_out,
            ),
        )

        ANALYSIS_DURATION.observe(elapsed_ms / 1000)
        self._record(result)
        logger.info(
            f"Analysis of {url} finished in {elapsed_ms:.0f} ms: "
            f"{succeeded}/{len(services)} services, score {scoring.final_score} "
            f"({scoring.risk_level.value})"
        )
        return result

    async def _fetch_and_score(
        self,
        parsed: ParsedURL,
        normalized_url: str,
        outcomes: dict[str, ServiceOutcome],
        signals: dict[str, SignalResult],
        force_refresh: bool,
        experiment_id: str | None,
        user_id: str | None,
    ) -> ScoringResult:
        calls = self._build_calls(parsed, normalized_url)

        if self.config.parallel_execution:
            await asyncio.gather(
                *(self._run_service(call, force_refresh, outcomes, signals) for call in calls)
            )
        else:
            for call in calls:
                await self._run_service(call, force_refresh, outcomes, signals)

        succeeded = [key for key in SERVICE_FACTORS if key in signals and signals[key].success]
        if len(succeeded) < self.config.minimum_required_services:
            raise InsufficientDataError(len(succeeded), self.config.minimum_required_services)

        # Scoring
        scoring_input = ScoringInput(
            url=normalized_url,
            reputation=self._successful(signals, "reputation"),
            whois=self._successful(signals, "whois"),
            ssl=self._successful(signals, "ssl"),
            ai=self._successful(signals, "ai"),
        )
        try:
            return self.scoring_calculator.calculate_score(
                scoring_input, experiment_id=experiment_id, user_id=user_id
            )
        except Exception as e:
            logger.exception(f"Scoring failed for {normalized_url}: {e}")
            return create_fallback_result(normalized_url, reason="Scoring failed")

    @staticmethod
    def _successful(signals: dict[str, SignalResult], key: str) -> SignalResult | None:
        result = signals.get(key)
        return result if result is not None and result.success else None

    def _build_calls(self, parsed: ParsedURL, normalized_url: str) -> list[_Call]:
        providers = self.providers
        tls_port = parsed.port if parsed.protocol == "https" and parsed.port else 443
        calls: list[_Call] = []

        def _refresh(provider: Any, target: str, **options: Any):
            clear = getattr(provider, "clear_cache", None)
            if clear is None:
                return None
            return lambda: clear(target, **options)

        if providers.reputation is not None:
            p = providers.reputation
            calls.append(_Call("reputation", lambda: p.analyze_url(normalized_url), _refresh(p, normalized_url)))
        if providers.whois is not None:
            p_whois = providers.whois
            calls.append(
                _Call("whois", lambda: p_whois.analyze_domain(parsed.domain), _refresh(p_whois, parsed.domain))
            )
        if providers.ssl is not None:
            p_ssl = providers.ssl
            calls.append(
                _Call(
                    "ssl",
                    lambda: p_ssl.analyze_certificate(parsed.hostname, port=tls_port),
                    _refresh(p_ssl, parsed.hostname, port=tls_port),
                )
            )
        if providers.ai is not None:
            p_ai = providers.ai
            context = self.technical_context(parsed)
            calls.append(
                _Call(
                    "ai",
                    lambda: p_ai.analyze_url(normalized_url, context=context),
                    _refresh(p_ai, normalized_url),
                )
            )
        return calls

    @staticmethod
    def technical_context(parsed: ParsedURL) -> dict[str, Any]:
        """URL structure hints handed to the content analysis provider."""
        return {
            "domain": parsed.domain,
            "subdomain": parsed.subdomain,
            "path": parsed.path,
            "parameters": {k: v[0] if len(v) == 1 else v for k, v in parsed.query_params.items()},
            "is_ip": parsed.is_ip,
            "has_https": parsed.protocol == "https",
            "path_depth": len(parsed.path_parts),
            "query_param_count": len(parsed.query_params),
            "pattern_analysis": detect_url_patterns(parsed.original, parsed).to_dict(),
        }

    async def _attempt(self, call: _Call) -> SignalResult:
        timeout_ms = self.config.service_timeout_ms
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(call.invoke(), timeout=timeout_ms / 1000)
        except TimeoutError:
            return SignalResult.fail(
                ErrorInfo("timeout", f"{call.key} timed out after {timeout_ms} ms", retryable=True),
                processing_time_ms=(time.perf_counter() - start) * 1000,
            )
        except Exception as e:
            logger.warning(f"Service {call.key} raised {type(e).__name__}: {e}")
            return SignalResult.fail(
                ErrorInfo.from_exception(e),
                processing_time_ms=(time.perf_counter() - start) * 1000,
            )

        if not isinstance(result, SignalResult):
            return SignalResult.fail(
                ErrorInfo("parsing", f"{call.key} returned {type(result).__name__}")
            )
        return result

    async def _run_service(
        self,
        call: _Call,
        force_refresh: bool,
        outcomes: dict[str, ServiceOutcome],
        signals: dict[str, SignalResult],
    ) -> None:
        """Run one provider with timeout and optional retry. Never raises."""
        start = time.perf_counter()

        if force_refresh and call.refresh is not None:
            try:
                await call.refresh()
            except Exception as e:
                logger.warning(f"Could not clear {call.key} cache: {e}")

        retries = self.config.max_retries if self.config.retry_failed_services else 0
        attempts = 0
        result: SignalResult | None = None

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=self.config.retry_wait_ms / 1000, max=2),
            retry=retry_if_result(
                lambda r: not r.success and r.error is not None and r.error.retryable
            ),
            retry_error_callback=lambda state: state.outcome.result(),
        ):
            with attempt:
                attempts += 1
                result = await self._attempt(call)
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(result)

        if attempts > 1:
            logger.info(f"Service {call.key} needed {attempts} attempts")
            if result.success:
                result = dataclasses.replace(result, error_count=result.error_count + attempts - 1)

        signals[call.key] = result
        outcomes[call.key] = ServiceOutcome(
            success=result.success,
            processing_time_ms=round((time.perf_counter() - start) * 1000, 2),
            from_cache=result.from_cache,
            attempts=attempts,
            error=result.error,
        )
        PROVIDER_CALLS.labels(
            provider=call.key,
            outcome="success" if result.success else (result.error.code if result.error else "failure"),
        ).inc()

    def _fallback(self, url: str, reason: str, start_time: float, metric_reason: str) -> ScoringResult:
        FALLBACK_COUNT.labels(reason=metric_reason).inc()
        return create_fallback_result(
            url,
            reason=reason,
            processing_time_ms=(time.perf_counter() - start_time) * 1000,
            factors=list(self.scoring_calculator.config_manager.config.weights),
        )

    def _rejected(
        self,
        url: str,
        services: dict[str, Any],
        error: str | None,
        error_type: str | None,
        start_time: float,
    ) -> OrchestrationResult:
        scoring = self._fallback(url, "URL rejected", start_time, "invalid_url")
        skipped = ErrorInfo("validation", f"Skipped: {error}")
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        return OrchestrationResult(
            url=url,
            scoring=scoring,
            service_results={
                key: ServiceOutcome(success=False, processing_time_ms=0.0, error=skipped)
                for key in services
            },
            orchestration_metrics=OrchestrationMetrics(
                total_processing_time_ms=round(elapsed_ms, 2),
                services_executed=0,
                services_succeeded=0,
                services_failed=len(services),
                parallel_execution=self.config.parallel_execution,
                caching_enabled=self.config.caching_enabled,
                final_state=AnalysisState.FAILED,
            ),
            validation_error=error,
            validation_error_type=error_type,
        )

    # Bookkeeping

    def _record(self, result: OrchestrationResult) -> None:
        scoring = result.scoring
        metrics = result.orchestration_metrics
        self._history.append(
            AnalysisRecord(
                url=result.url,
                timestamp=datetime.now(UTC).isoformat(),
                final_score=scoring.final_score,
                risk_level=scoring.risk_level.value,
                confidence=scoring.confidence,
                processing_time_ms=metrics.total_processing_time_ms,
                services_executed=metrics.services_executed,
                services_succeeded=metrics.services_succeeded,
                factors_available=[
                    SERVICE_FACTORS[key].value
                    for key, outcome in result.service_results.items()
                    if outcome.success
                ],
                fallback=scoring.is_fallback,
            )
        )

    def get_statistics(self) -> dict[str, Any]:
        history = list(self._history)
        total = len(history)
        if not total:
            return {
                "total_analyses": 0,
                "average_processing_time_ms": 0.0,
                "average_success_rate": 0.0,
                "service_availability": {f.value: 0.0 for f in SERVICE_FACTORS.values()},
                "recent_analyses": [],
            }

        success_rates = [
            r.services_succeeded / r.services_executed * 100
            for r in history
            if r.services_executed
        ]
        return {
            "total_analyses": total,
            "average_processing_time_ms": round(sum(r.processing_time_ms for r in history) / total, 2),
            "average_success_rate": round(sum(success_rates) / len(success_rates), 2)
            if success_rates
            else 0.0,
            "service_availability": {
                factor.value: round(
                    sum(1 for r in history if factor.value in r.factors_available) / total * 100, 2
                )
                for factor in SERVICE_FACTORS.values()
            },
            "recent_analyses": [dataclasses.asdict(r) for r in history[-RECENT_ANALYSES:]],
        }

    def update_configuration(self, partial: dict[str, Any]) -> None:
        """
        Apply orchestration overrides and an optional ``scoring`` partial.

        Raises ConfigurationError, leaving everything unchanged, if any
        override is invalid.
        """
        partial = dict(partial)
        scoring_partial = partial.pop("scoring", None)

        known = {f.name for f in dataclasses.fields(OrchestrationConfig)}
        unknown = sorted(set(partial) - known)
        if unknown:
            raise ConfigurationError([f"Unknown orchestration setting: {name}" for name in unknown])

        candidate = dataclasses.replace(self.config, **partial)
        errors = candidate.validate()
        if errors:
            raise ConfigurationError(errors)

        if scoring_partial:
            self.scoring_calculator.update_configuration(scoring_partial)

        if candidate.history_size != self.config.history_size:
            self._history = deque(self._history, maxlen=candidate.history_size)
        self.config = candidate
        logger.info(f"Orchestration configuration updated: {sorted(partial)}")

    def clear_history(self) -> None:
        self._history.clear()
        self.scoring_calculator.clear_history()

    async def clear_cache(self) -> None:
        """Drop every provider's cached signals."""
        for key, provider in self.providers.configured().items():
            clear = getattr(provider, "clear_cache", None)
            if clear is None:
                continue
            try:
                await clear()
            except Exception as e:
                logger.warning(f"Could not clear {key} cache: {e}")
        logger.info("Provider caches cleared")

    async def aclose(self) -> None:
        for provider in self.providers.configured().values():
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()

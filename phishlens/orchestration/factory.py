"""Build a fully wired orchestrator from application settings."""

import logging

from phishlens.cache import CacheManager, create_backend
from phishlens.orchestration.orchestrator import (
    AnalysisOrchestrator,
    OrchestrationConfig,
    SignalProviders,
)
from phishlens.providers.certificate import TlsCertificateProvider
from phishlens.providers.content_ai import ContentAnalysisProvider
from phishlens.providers.domain_age import DomainAgeProvider
from phishlens.providers.reputation import SafeBrowsingReputationProvider
from phishlens.scoring.calculator import ScoringCalculator
from phishlens.scoring.config_manager import ScoringConfigManager

logger = logging.getLogger(__name__)


def create_orchestrator(settings) -> AnalysisOrchestrator:
    """
    Wire providers, one shared cache backend and the scoring engine.

    Providers without credentials are still registered; they report an
    auth failure per call and the orchestrator degrades around them.
    """
    backend = create_backend(settings)

    providers = SignalProviders(
        reputation=SafeBrowsingReputationProvider(
            cache=CacheManager(backend, "reputation", settings.reputation_cache_ttl)
        ),
        whois=DomainAgeProvider(cache=CacheManager(backend, "whois", settings.whois_cache_ttl)),
        ssl=TlsCertificateProvider(cache=CacheManager(backend, "ssl", settings.ssl_cache_ttl)),
        ai=ContentAnalysisProvider(cache=CacheManager(backend, "ai", settings.ai_cache_ttl)),
    )

    if settings.scoring_config_path:
        config_manager = ScoringConfigManager.from_yaml(settings.scoring_config_path)
    else:
        config_manager = ScoringConfigManager()

    logger.info(f"Orchestrator created with {settings.cache_backend} cache backend")
    return AnalysisOrchestrator(
        providers,
        OrchestrationConfig.from_settings(settings),
        ScoringCalculator(config_manager),
    )

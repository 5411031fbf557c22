"""Analysis orchestration."""

from phishlens.orchestration.orchestrator import (
    AnalysisOrchestrator,
    AnalysisState,
    OrchestrationConfig,
    OrchestrationResult,
    ServiceOutcome,
    SignalProviders,
)

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisState",
    "OrchestrationConfig",
    "OrchestrationResult",
    "ServiceOutcome",
    "SignalProviders",
]

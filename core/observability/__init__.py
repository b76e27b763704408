"""
Observability Module for the Reconciliation Service

Provides structured logging with correlation IDs (run, job, employee).
"""

from core.observability.logging import (
    configure_logging,
    get_logger,
    get_correlation_context,
    CorrelationContext,
    with_correlation,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "get_correlation_context",
    "CorrelationContext",
    "with_correlation",
]

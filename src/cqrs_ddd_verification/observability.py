"""Verification metrics helpers for Prometheus integration.

Usage:
    ```python
    from cqrs_ddd_verification.observability import VerificationMetrics

    with VerificationMetrics.operation("verify", step="sms_otp") as outcome:
        ok = await do_verify()
        if not ok:
            outcome.result = "rejected"
    ```
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram

_logger = logging.getLogger("cqrs_ddd.verification.metrics")

if TYPE_CHECKING:
    from collections.abc import Generator


@dataclass
class OperationOutcome:
    """Result label for one timed operation; callers may overwrite it."""

    result: str = "success"


class _VerificationMetricsRegistry:
    """Registry for verification Prometheus metrics.

    Lazily creates the collectors on first use so importing the package never
    registers anything.
    """

    def __init__(self) -> None:
        self._histogram: Any = None
        self._counter: Any = None
        self._registry: CollectorRegistry = REGISTRY

    def configure(self, registry: CollectorRegistry) -> None:
        """Register future collectors on ``registry`` instead of the default."""
        self._registry = registry
        self._histogram = None
        self._counter = None

    def _ensure_initialized(self) -> None:
        if self._counter is not None:
            return

        self._histogram = Histogram(
            "verification_operation_duration_seconds",
            "Verification operation duration",
            ["step", "operation"],
            registry=self._registry,
        )
        self._counter = Counter(
            "verification_operations_total",
            "Verification operation count",
            ["step", "operation", "result"],
            registry=self._registry,
        )

    @property
    def histogram(self) -> Any:
        self._ensure_initialized()
        return self._histogram

    @property
    def counter(self) -> Any:
        self._ensure_initialized()
        return self._counter


_registry = _VerificationMetricsRegistry()


class VerificationMetrics:
    """Helpers for recording OTP issuance and verification metrics."""

    @staticmethod
    def configure(registry: CollectorRegistry) -> None:
        _registry.configure(registry)

    @staticmethod
    @contextmanager
    def operation(
        operation: str,
        *,
        step: str = "unknown",
    ) -> Generator[OperationOutcome, None, None]:
        """Context manager for timing a store operation.

        Args:
            operation: Operation name (issue, verify, invalidate).
            step: Canonical step key.

        Yields:
            An :class:`OperationOutcome` whose ``result`` becomes the label.
            An escaping exception records its class name instead.
        """
        outcome = OperationOutcome()
        start = time.monotonic()

        try:
            yield outcome
        except Exception as e:
            outcome.result = type(e).__name__
            raise
        finally:
            duration = time.monotonic() - start
            try:
                _registry.histogram.labels(step=step, operation=operation).observe(
                    duration
                )
                _registry.counter.labels(
                    step=step, operation=operation, result=outcome.result
                ).inc()
            except ValueError:
                _logger.debug("Failed to record verification metrics", exc_info=True)


__all__: list[str] = ["VerificationMetrics", "OperationOutcome"]

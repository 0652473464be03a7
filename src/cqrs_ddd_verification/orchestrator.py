"""StepOrchestrator - decides which verification steps are still pending.

Rules, applied to the enabled steps in configured order:

1. ``email_verify`` is the only non-OTP step; every other step is an OTP
   step, including custom steps the engine has no driver for.
2. With more than one OTP step and no stored preference the user has not
   picked a method yet. During a fresh login a single
   ``choose_verification`` marker takes the place of the OTP steps. While
   merely browsing they are skipped without a marker, so first-time setup
   never locks anyone out of the application.
3. With a preference, only the chosen OTP step is considered.
4. A step is pending when its driver says it is not satisfied. During a
   login every considered OTP step is pending regardless, forcing one
   fresh code per login. ``email_verify`` is exempt from that re-check.
5. Steps without a driver are never satisfied (fail closed).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .exceptions import UnknownDriverError
from .result import VerificationResult
from .steps import CHOOSE_VERIFICATION, StepKind, dasherize, normalize_step_name

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from .drivers.base import IStepDriver
    from .ports import IRouteResolver
    from .principal import Principal

logger = logging.getLogger("cqrs_ddd.verification.orchestrator")

PREFERENCE_KEY = "otp_driver"


def is_otp_step(step: str) -> bool:
    return step != StepKind.EMAIL_VERIFY.value


def compute_pending(
    steps: Sequence[str],
    *,
    is_satisfied: Callable[[str], bool],
    preference: str | None = None,
    login_in_progress: bool = False,
) -> list[str]:
    """Ordered, unique list of pending steps.

    Args:
        steps: Enabled step keys in configured order.
        is_satisfied: Whether stored data already satisfies a step.
        preference: The user's chosen OTP step, if any. A preference that is
            not one of the OTP steps in ``steps`` is ignored.
        login_in_progress: A fresh login is being completed.
    """
    otp_steps = [s for s in steps if is_otp_step(s)]
    if preference not in otp_steps:
        preference = None
    undecided = len(otp_steps) > 1 and preference is None

    pending: list[str] = []
    for step in steps:
        otp = is_otp_step(step)

        if otp and undecided:
            if login_in_progress and CHOOSE_VERIFICATION not in pending:
                pending.append(CHOOSE_VERIFICATION)
            continue

        if otp and preference is not None and step != preference:
            continue

        if step in pending:
            continue
        if not is_satisfied(step) or (otp and login_in_progress):
            pending.append(step)

    return pending


def parse_preferences(value: Any) -> Mapping[str, Any] | None:
    """Decode a preferences column holding a JSON object or a mapping."""
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError:
            logger.debug("Ignoring undecodable verification preferences")
            return None
    return value if isinstance(value, Mapping) else None


class StepOrchestrator:
    """Evaluates a principal against the configured step pipeline.

    Args:
        required_steps: Step keys in order; normalized and deduplicated.
        drivers: Step key -> driver for every enabled built-in step.
        disabled_steps: Step keys removed from the pipeline.
        preferences_column: Principal column holding the JSON preferences.
        next_route: Route descriptor for the verification page; the first
            pending step is appended as ``pass``.
        resolver: Turns routes into URLs for :class:`VerificationResult`.
        enabled: Master switch; when off nothing is ever pending.
    """

    def __init__(
        self,
        required_steps: Iterable[str],
        drivers: Mapping[str, IStepDriver],
        *,
        disabled_steps: Iterable[str] = (),
        preferences_column: str = "verification_preferences",
        next_route: Mapping[str, str] | None = None,
        resolver: IRouteResolver | None = None,
        enabled: bool = True,
    ) -> None:
        disabled = {normalize_step_name(s) for s in disabled_steps}
        self._steps: list[str] = []
        for step in required_steps:
            key = normalize_step_name(step)
            if key and key not in disabled and key not in self._steps:
                self._steps.append(key)
        self._drivers = {normalize_step_name(k): v for k, v in drivers.items()}
        self._preferences_column = preferences_column
        self._next_route = dict(next_route or {"controller": "Users", "action": "verify"})
        self._resolver = resolver
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def resolver(self) -> IRouteResolver | None:
        return self._resolver

    def enabled_steps(self) -> list[str]:
        return list(self._steps)

    def otp_steps(self) -> list[str]:
        """OTP steps the user may choose between."""
        return [s for s in self._steps if is_otp_step(s)]

    def get_driver(self, name: str) -> IStepDriver | None:
        """Driver for an enabled built-in step, else None."""
        key = normalize_step_name(name)
        if key not in self._steps:
            return None
        return self._drivers.get(key)

    def require_driver(self, name: str) -> IStepDriver:
        driver = self.get_driver(name)
        if driver is None:
            raise UnknownDriverError(name, f"No enabled driver for step {name!r}")
        return driver

    def user_otp_driver(self, principal: Principal) -> str | None:
        """The OTP step the user chose, implied when only one is enabled."""
        otp_steps = self.otp_steps()
        if len(otp_steps) <= 1:
            return otp_steps[0] if otp_steps else None

        prefs = parse_preferences(principal.get(self._preferences_column))
        chosen = prefs.get(PREFERENCE_KEY) if prefs is not None else None
        if not isinstance(chosen, str) or not chosen:
            return None

        normalized = normalize_step_name(chosen)
        return normalized if normalized in otp_steps else None

    def is_step_satisfied(self, step: str, principal: Principal) -> bool:
        driver = self._drivers.get(step)
        if driver is None:
            return False
        return driver.is_satisfied(principal)

    def pending_steps(self, principal: Principal) -> list[str]:
        if not self._enabled:
            return []
        pending = compute_pending(
            self._steps,
            is_satisfied=lambda step: self.is_step_satisfied(step, principal),
            preference=self.user_otp_driver(principal),
            login_in_progress=principal.login_in_progress,
        )
        logger.debug("Pending verification steps: %s", pending)
        return pending

    def has_pending(self, principal: Principal | None) -> bool:
        if principal is None:
            return False
        return bool(self.pending_steps(principal))

    def evaluate(self, principal: Principal | None) -> VerificationResult:
        """Pending steps plus the route to the first one."""
        if principal is None or not self._enabled:
            return VerificationResult.build(principal, [])

        pending = self.pending_steps(principal)
        if not pending:
            return VerificationResult.build(principal, [])

        route = {**self._next_route, "pass": dasherize(pending[0])}
        return VerificationResult.build(principal, pending, route, self._resolver)


__all__: list[str] = [
    "StepOrchestrator",
    "compute_pending",
    "parse_preferences",
    "is_otp_step",
    "PREFERENCE_KEY",
]

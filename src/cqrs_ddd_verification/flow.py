"""VerificationFlow - request-level decisions around the orchestrator.

Everything here is a pure decision over a :class:`Principal`: the flow
never writes to a user store. Operations that change the user record return
a :class:`PrincipalUpdate` whose ``updates`` the caller persists and whose
``principal`` it stores back into the session.

Usage:
    ```python
    flow = build_verification(settings, cache=cache)
    principal = flow.start_login_flow(principal)
    url = flow.next_url(principal)
    if await flow.verify("sms_otp", principal, {"code": "123456"}):
        update = flow.mark_verified("sms_otp", principal)
        users.save(update.updates)
    ```
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import Field

from .config import (
    ColumnsConfig,
    EmailOtpStep,
    EmailVerifyStep,
    RoutingConfig,
    SmsOtpStep,
    TotpStep,
)
from .drivers.base import is_filled, read_text
from .exceptions import CryptoError, OtpIssuanceError, UnknownDriverError
from .orchestrator import PREFERENCE_KEY, parse_preferences
from .principal import Principal
from .result import resolve_url
from .steps import CHOOSE_VERIFICATION, StepKind, normalize_step_name
from .totp import TotpAlgorithm, format_secret, generate_secret, is_base32_secret
from .value_object import ValueObject

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .config import StepConfig
    from .orchestrator import StepOrchestrator
    from .ports import IRouteResolver
    from .result import VerificationResult
    from .security import ICryptoProvider

logger = logging.getLogger("cqrs_ddd.verification.flow")

_LOGIN_CODE_STEPS = (StepKind.EMAIL_OTP.value, StepKind.SMS_OTP.value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PrincipalUpdate(ValueObject):
    """Column changes to persist plus the principal reflecting them."""

    principal: Principal
    updates: dict[str, Any] = Field(default_factory=dict)


class TotpEnrollment(ValueObject):
    """Material for the authenticator enrollment page.

    Attributes:
        secret: Plaintext Base32 secret (show once, never store).
        stored_secret: Value for the secret column (encrypted when crypto
            is configured).
        provisioning_uri: ``otpauth://`` URI to render as a QR code.
        manual_key: ``secret`` in groups of four for manual entry.
        update: Columns to persist; empty when the stored secret is reused.
    """

    secret: str
    stored_secret: str
    provisioning_uri: str
    manual_key: str
    update: PrincipalUpdate


class VerificationFlow:
    """Routing, login re-verification, method choice and TOTP enrollment.

    Args:
        orchestrator: Pending-step evaluation and driver lookup.
        routing: Route descriptors for the pending, choose, enroll and
            verified pages.
        columns: Default column names.
        steps: Built-in step configs keyed by step key.
        resolver: Route resolver; without one every URL is ``""``.
        crypto: Encrypts TOTP secrets at rest; None stores them in clear.
        identity_field: Column identifying the principal.
        now: Timestamp source for verified-at columns.
    """

    def __init__(
        self,
        orchestrator: StepOrchestrator,
        *,
        routing: RoutingConfig | None = None,
        columns: ColumnsConfig | None = None,
        steps: Mapping[str, StepConfig] | None = None,
        resolver: IRouteResolver | None = None,
        crypto: ICryptoProvider | None = None,
        identity_field: str = "id",
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._orchestrator = orchestrator
        self._routing = routing or RoutingConfig()
        self._columns = columns or ColumnsConfig()
        self._steps: dict[str, StepConfig] = dict(
            steps
            or {
                cfg.key: cfg
                for cfg in (EmailVerifyStep(), EmailOtpStep(), SmsOtpStep(), TotpStep())
            }
        )
        self._resolver = resolver if resolver is not None else orchestrator.resolver
        self._crypto = crypto
        self._identity_field = identity_field
        self._now = now

    @property
    def orchestrator(self) -> StepOrchestrator:
        return self._orchestrator

    # ── columns ──────────────────────────────────────────────────

    def _column(self, step: StepKind, alias: str, default: str) -> str:
        config = self._steps.get(step.value)
        if config is None:
            return default
        return config.field_map.get(alias, default)

    @property
    def email_verified_column(self) -> str:
        return self._column(
            StepKind.EMAIL_VERIFY, "verified_at", self._columns.email_verified_at
        )

    @property
    def phone_column(self) -> str:
        return self._column(StepKind.SMS_OTP, "phone", self._columns.phone)

    @property
    def totp_secret_column(self) -> str:
        return self._column(StepKind.TOTP, "secret", self._columns.totp_secret)

    # ── evaluation and routing ───────────────────────────────────

    def result(self, principal: Principal | None) -> VerificationResult:
        return self._orchestrator.evaluate(principal)

    def requires_next_step(self, principal: Principal | None) -> bool:
        return not self.result(principal).is_verified

    def select_step(self, step: str | None, result: VerificationResult) -> str:
        """The requested step, else the first pending one ("" if neither)."""
        selected = normalize_step_name(step or "")
        if not selected and result.first_pending_step is not None:
            selected = result.first_pending_step
        return selected

    def next_url(self, principal: Principal | None) -> str | None:
        """Where to send the user next, or None when nothing resolves.

        Outstanding email confirmation goes to the pending page, an
        undecided OTP method to the choose page, and an SMS or TOTP step
        without a phone number or secret to the matching enrollment page.
        Verified principals go to the on-verified page.
        """
        result = self.result(principal)
        url = result.next_url

        if url:
            if result.has_step(StepKind.EMAIL_VERIFY.value):
                url = self._resolve(self._routing.pending_route) or url

            first = result.first_pending_step
            if first == CHOOSE_VERIFICATION:
                url = self._resolve(self._routing.choose_verification_route) or url
            elif principal is not None and first == StepKind.SMS_OTP.value:
                if not read_text(principal, self.phone_column):
                    url = self._resolve(self._routing.enroll_phone_route)
            elif principal is not None and first == StepKind.TOTP.value:
                if not read_text(principal, self.totp_secret_column):
                    url = self._resolve(self._routing.enroll_route)

        if not url and result.is_verified:
            url = self._resolve(self._routing.on_verified_route)

        logger.debug("Verification next url %r for route %s", url, result.next_route)
        return url or None

    def _resolve(self, route: Mapping[str, str]) -> str:
        return resolve_url(route, self._resolver)

    # ── step execution ───────────────────────────────────────────

    async def start(self, step: str, principal: Principal) -> bool:
        """Start ``step`` if it is enabled and can start. Returns whether it ran.

        Raises:
            RateLimitExceededError: Burst limit reached.
            ResendCooldownActiveError: Previous code is too recent.
        """
        driver = self._orchestrator.get_driver(step)
        if driver is None or not driver.can_start(principal):
            return False
        await driver.start(principal)
        return True

    async def start_login_code(self, step: str, principal: Principal) -> Principal:
        """Send the one code a fresh login needs, at most once per login.

        Only email and SMS codes are sent automatically. Issuance refusals
        (cooldown, rate limit) leave the principal unchanged; the user can
        still ask for a resend explicitly.
        """
        step = normalize_step_name(step)
        if step not in _LOGIN_CODE_STEPS:
            return principal
        if principal.login_in_progress and principal.login_code_sent:
            return principal

        try:
            started = await self.start(step, principal)
        except OtpIssuanceError as e:
            logger.info("Automatic %s code not sent: %s", step, e)
            return principal

        if started and principal.login_in_progress:
            return principal.with_login_state(login_code_sent=True)
        return principal

    async def verify(
        self, step: str, principal: Principal, submitted: Mapping[str, Any]
    ) -> bool:
        """Validate submitted input for ``step``; unknown steps never verify."""
        driver = self._orchestrator.get_driver(step)
        if driver is None:
            return False
        if normalize_step_name(step) == StepKind.TOTP.value:
            principal = self.decrypt_totp_principal(principal)
        return await driver.verify(principal, submitted)

    # ── login state ──────────────────────────────────────────────

    def start_login_flow(self, principal: Principal) -> Principal:
        """Flag a fresh login so OTP steps are re-checked.

        Idempotent per identifier: a principal already flagged for the same
        identifier is returned unchanged, so the code is not re-sent on
        every request.
        """
        identifier = read_text(principal, self._identity_field)
        existing = principal.login_triggered_id or ""
        if existing and existing == identifier:
            return principal
        return principal.with_login_state(
            login_required=True,
            login_code_sent=False,
            login_triggered_id=identifier,
        )

    async def after_login(self, principal: Principal) -> Principal:
        """Entry point right after authentication.

        A confirmed (or not required) email starts the login flow; otherwise
        the confirmation link is (re)sent and the principal is unchanged.
        """
        driver = self._orchestrator.get_driver(StepKind.EMAIL_VERIFY.value)
        if driver is None or driver.is_satisfied(principal):
            return self.start_login_flow(principal)
        await self.start(StepKind.EMAIL_VERIFY.value, principal)
        return principal

    def mark_verified(self, step: str, principal: Principal) -> PrincipalUpdate:
        """Verified-at columns for ``step`` plus cleared login state.

        Existing timestamps are kept; only empty columns are filled.
        """
        step = normalize_step_name(step)
        now = self._now()
        updates: dict[str, Any] = {}

        if step in (StepKind.EMAIL_VERIFY.value, StepKind.EMAIL_OTP.value):
            column = self.email_verified_column
            if step == StepKind.EMAIL_OTP.value:
                column = self._column(StepKind.EMAIL_OTP, "verified_at", column)
            if principal.get(column) is None:
                updates[column] = now

        elif step == StepKind.SMS_OTP.value:
            at_column = self._column(
                StepKind.SMS_OTP, "verified_at", self._columns.phone_verified_at
            )
            flag_column = self._column(
                StepKind.SMS_OTP, "verified", self._columns.phone_verified
            )
            if principal.get(at_column) is None and not is_filled(
                principal.get(flag_column)
            ):
                updates[at_column] = now
                updates[flag_column] = True

        elif step == StepKind.TOTP.value:
            column = self._column(
                StepKind.TOTP, "verified_at", self._columns.totp_verified_at
            )
            if principal.get(column) is None:
                updates[column] = now

        updated = principal.with_data(updates).without_login_state()
        return PrincipalUpdate(principal=updated, updates=updates)

    # ── method choice ────────────────────────────────────────────

    def available_otp_drivers(self) -> list[str]:
        return self._orchestrator.otp_steps()

    def selected_otp_driver(self, principal: Principal) -> str | None:
        prefs = parse_preferences(principal.get(self._columns.verification_preferences))
        chosen = prefs.get(PREFERENCE_KEY) if prefs is not None else None
        return normalize_step_name(chosen) if isinstance(chosen, str) and chosen else None

    def choose_otp_driver(self, principal: Principal, chosen: str) -> PrincipalUpdate:
        """Record the user's OTP method in the preferences column.

        Raises:
            UnknownDriverError: ``chosen`` is not an enabled OTP step.
        """
        step = normalize_step_name(chosen)
        if not step or step not in self.available_otp_drivers():
            raise UnknownDriverError(
                chosen, f"Not an available verification method: {chosen!r}"
            )

        column = self._columns.verification_preferences
        prefs = dict(parse_preferences(principal.get(column)) or {})
        prefs[PREFERENCE_KEY] = step
        updates = {column: prefs}
        return PrincipalUpdate(principal=principal.with_data(updates), updates=updates)

    # ── TOTP secrets ─────────────────────────────────────────────

    def encrypt_secret(self, secret: str) -> str:
        if self._crypto is None:
            return secret
        return self._crypto.encrypt(secret)

    def decrypt_secret(self, payload: str) -> str:
        """Decrypt a stored secret; an undecryptable value is returned as-is."""
        if self._crypto is None:
            return payload
        try:
            return self._crypto.decrypt_text(payload)
        except (CryptoError, UnicodeDecodeError) as e:
            logger.debug("Stored secret is not an encrypted payload: %s", e)
            return payload

    def decrypt_totp_principal(self, principal: Principal) -> Principal:
        """Principal whose secret column holds the plaintext secret."""
        column = self.totp_secret_column
        stored = read_text(principal, column)
        if not stored:
            return principal
        plain = self.decrypt_secret(stored)
        if not plain or plain == stored:
            return principal
        return principal.with_data({column: plain})

    def totp_algorithm(self) -> TotpAlgorithm:
        config = self._steps.get(StepKind.TOTP.value)
        if not isinstance(config, TotpStep):
            config = TotpStep()
        return TotpAlgorithm(
            digits=config.digits,
            period=config.period,
            algorithm=config.algorithm,
            drift=config.drift,
        )

    def enroll_totp(
        self,
        principal: Principal,
        *,
        account: str | None = None,
        issuer: str | None = None,
    ) -> TotpEnrollment:
        """Prepare authenticator enrollment.

        Reuses the stored secret when it decrypts (or is a plain Base32
        secret); otherwise generates a new one that the caller must persist
        from ``update.updates``.

        Raises:
            UnsupportedAlgorithmError: The TOTP algorithm cannot be encoded
                in a provisioning URI.
        """
        column = self.totp_secret_column
        stored = read_text(principal, column)
        secret = ""
        if stored:
            secret = self.decrypt_secret(stored)
            if not secret or secret == stored:
                secret = stored if is_base32_secret(stored) else ""

        updates: dict[str, Any] = {}
        if not secret:
            secret = generate_secret()
            stored = self.encrypt_secret(secret)
            updates[column] = stored

        config = self._steps.get(StepKind.TOTP.value)
        issuer = issuer or (config.issuer if isinstance(config, TotpStep) else "")
        account = (
            account
            or read_text(principal, self._columns.email)
            or read_text(principal, self._identity_field)
        )
        uri = self.totp_algorithm().provisioning_uri(secret, account, issuer or "")

        return TotpEnrollment(
            secret=secret,
            stored_secret=stored,
            provisioning_uri=uri,
            manual_key=format_secret(secret),
            update=PrincipalUpdate(principal=principal.with_data(updates), updates=updates),
        )


__all__: list[str] = ["VerificationFlow", "PrincipalUpdate", "TotpEnrollment"]

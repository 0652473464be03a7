"""One-time code steps delivered by email or SMS.

Both delegate issuance and verification to :class:`OtpIssuanceStore`; they
differ only in how the code reaches the user and which columns mark the
step as satisfied.
"""

from __future__ import annotations

import logging
import math
import re
import secrets
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from ..exceptions import IdentityKeyMissingError
from ..transport import SmsMessage
from .base import BaseStepDriver, is_filled, read_text

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..config import ColumnsConfig, EmailOtpStep, OtpStepConfig, SmsOtpStep
    from ..ports import EmailOtpDelivery, ISmsTransport
    from ..principal import Principal
    from ..storage import OtpIssuanceStore

logger = logging.getLogger("cqrs_ddd.verification.drivers")

MIN_CODE_LENGTH = 4
MAX_CODE_LENGTH = 10

_NON_DIGITS = re.compile(r"[^0-9]+")


def generate_numeric_code(length: int) -> str:
    """Cryptographically random numeric code, length clamped to [4, 10]."""
    length = max(MIN_CODE_LENGTH, min(MAX_CODE_LENGTH, length))
    return "".join(str(secrets.randbelow(10)) for _ in range(length))


def normalize_submitted_code(code: str) -> str:
    """Drop everything but digits ("123 456" and "123-456" are accepted)."""
    return _NON_DIGITS.sub("", code)


def normalize_e164(value: str, default_country_code: str | None = None) -> str:
    """Best-effort E.164 formatting.

    ``+385 91 234`` -> ``+38591234``; ``0038591234`` -> ``+38591234``;
    ``091234`` with country code ``385`` -> ``+385091234``. Without a
    leading ``+``/``00`` or a country code the bare digits are returned.
    Returns ``""`` when no digits remain.
    """
    value = value.strip()
    digits = _NON_DIGITS.sub("", value)
    if not digits:
        return ""

    if value.startswith("+"):
        return f"+{digits}"

    if value.startswith("00"):
        digits = digits[2:]
        return f"+{digits}" if digits else ""

    country = _NON_DIGITS.sub("", default_country_code or "")
    if country:
        return f"+{country}{digits}"
    return digits


class OtpStepDriver(BaseStepDriver, ABC):
    """Base for code-based steps backed by the issuance store.

    Args:
        config: Step options (length, ttl, column overrides).
        columns: Default column names.
        store: Challenge store shared by all OTP steps.
        identity_field: Principal column used as the storage identity key.
        default_length: Code length when the step does not set one.
    """

    def __init__(
        self,
        config: OtpStepConfig,
        columns: ColumnsConfig,
        store: OtpIssuanceStore,
        *,
        identity_field: str = "id",
        default_length: int = 6,
    ) -> None:
        super().__init__(config, columns)
        self._otp_config = config
        self._store = store
        self._identity_field = identity_field
        self._length = max(
            MIN_CODE_LENGTH, min(MAX_CODE_LENGTH, config.length or default_length)
        )

    @property
    def code_length(self) -> int:
        return self._length

    @property
    def ttl(self) -> int:
        return self._otp_config.ttl

    def expected_fields(self) -> dict[str, str]:
        return {"code": f"string|digits|length:{self._length}"}

    def identity_key(self, principal: Principal) -> str:
        """Storage identity of ``principal`` as a string.

        Raises:
            IdentityKeyMissingError: The identity column is empty.
        """
        key = read_text(principal, self._identity_field)
        if not key:
            raise IdentityKeyMissingError("Identity key is missing for OTP storage.")
        return key

    async def issue_code(self, principal: Principal) -> str:
        code = generate_numeric_code(self._length)
        await self._store.issue(self.identity_key(principal), self.key, code, self.ttl)
        return code

    async def start(self, principal: Principal) -> None:
        """Issue a fresh code and deliver it.

        Raises:
            RateLimitExceededError: Burst limit reached.
            ResendCooldownActiveError: Previous code is too recent.
            IdentityKeyMissingError: No identity key on the principal.
        """
        if not self.can_start(principal):
            logger.debug("Step %s cannot start: missing contact data", self.key)
            return
        code = await self.issue_code(principal)
        await self.deliver(principal, code)

    async def verify(self, principal: Principal, submitted: Mapping[str, Any]) -> bool:
        code = normalize_submitted_code(str(submitted.get("code") or ""))
        if not code:
            return False
        return await self._store.verify(self.identity_key(principal), self.key, code)

    async def invalidate(self, principal: Principal) -> None:
        await self._store.invalidate(self.identity_key(principal), self.key)

    @abstractmethod
    def can_start(self, principal: Principal) -> bool: ...

    @abstractmethod
    def is_satisfied(self, principal: Principal) -> bool: ...

    @abstractmethod
    async def deliver(self, principal: Principal, code: str) -> None: ...


class EmailOtpDriver(OtpStepDriver):
    default_label = "Email One-Time Code"

    def __init__(
        self,
        config: EmailOtpStep,
        columns: ColumnsConfig,
        store: OtpIssuanceStore,
        *,
        delivery: EmailOtpDelivery | None = None,
        identity_field: str = "id",
        default_length: int = 6,
    ) -> None:
        super().__init__(
            config,
            columns,
            store,
            identity_field=identity_field,
            default_length=default_length,
        )
        self._delivery = delivery

    @property
    def email_column(self) -> str:
        return self.column("email", self._columns.email)

    @property
    def verified_column(self) -> str:
        return self.column("verified_at", self._columns.email_verified_at)

    def can_start(self, principal: Principal) -> bool:
        return read_text(principal, self.email_column) != ""

    def is_satisfied(self, principal: Principal) -> bool:
        return is_filled(principal.get(self.verified_column))

    async def deliver(self, principal: Principal, code: str) -> None:
        if self._delivery is None:
            logger.warning("No email OTP delivery configured; code not sent")
            return
        await self._delivery(principal, code)


class SmsOtpDriver(OtpStepDriver):
    """SMS code step.

    The message body comes from ``message_template`` with ``{code}`` and
    ``{ttl}`` (minutes, rounded up) substituted.
    """

    default_label = "SMS One-Time Code"

    def __init__(
        self,
        config: SmsOtpStep,
        columns: ColumnsConfig,
        store: OtpIssuanceStore,
        *,
        transport: ISmsTransport,
        identity_field: str = "id",
        default_length: int = 6,
    ) -> None:
        super().__init__(
            config,
            columns,
            store,
            identity_field=identity_field,
            default_length=default_length,
        )
        self._sms_config = config
        self._transport = transport

    @property
    def phone_column(self) -> str:
        return self.column("phone", self._columns.phone)

    @property
    def verified_column(self) -> str:
        return self.column("verified_at", self._columns.phone_verified_at)

    @property
    def verified_flag_column(self) -> str:
        return self.column("verified", self._columns.phone_verified)

    def can_start(self, principal: Principal) -> bool:
        return read_text(principal, self.phone_column) != ""

    def is_satisfied(self, principal: Principal) -> bool:
        if not self.can_start(principal):
            return False
        return is_filled(principal.get(self.verified_column)) or is_filled(
            principal.get(self.verified_flag_column)
        )

    def recipient(self, principal: Principal) -> str:
        to = read_text(principal, self.phone_column)
        if to and self._sms_config.normalize_e164:
            to = normalize_e164(to, self._sms_config.default_country_code)
        return to

    def render_message(self, code: str) -> str:
        minutes = math.ceil(self.ttl / 60)
        return self._sms_config.message_template.replace("{code}", code).replace(
            "{ttl}", str(minutes)
        )

    async def deliver(self, principal: Principal, code: str) -> None:
        to = self.recipient(principal)
        if not to:
            logger.debug("No SMS recipient for step %s", self.key)
            return

        message = SmsMessage(
            recipient=to,
            body=self.render_message(code),
            sender=self._sms_config.sender_id,
        )
        result = await self._transport.send(message)
        if not result.success:
            logger.warning(
                "SMS delivery via %s failed: %s", self._transport.name, result.error
            )


__all__: list[str] = [
    "OtpStepDriver",
    "EmailOtpDriver",
    "SmsOtpDriver",
    "generate_numeric_code",
    "normalize_submitted_code",
    "normalize_e164",
]

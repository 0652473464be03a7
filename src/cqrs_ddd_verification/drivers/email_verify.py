"""Email confirmation link step."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .base import BaseStepDriver, is_filled, read_text

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..config import ColumnsConfig, EmailVerifyStep
    from ..ports import EmailLinkDelivery
    from ..principal import Principal

logger = logging.getLogger("cqrs_ddd.verification.drivers")


class EmailVerifyDriver(BaseStepDriver):
    """Satisfied once the email verified-at column is set.

    Link generation and click handling belong to the application; ``start``
    only invokes the delivery callback.
    """

    default_label = "Email Verification"

    def __init__(
        self,
        config: EmailVerifyStep,
        columns: ColumnsConfig,
        *,
        delivery: EmailLinkDelivery | None = None,
    ) -> None:
        super().__init__(config, columns)
        self._delivery = delivery

    @property
    def requires_input(self) -> bool:
        return False

    @property
    def email_column(self) -> str:
        return self.column("email", self._columns.email)

    @property
    def verified_column(self) -> str:
        return self.column("verified_at", self._columns.email_verified_at)

    def can_start(self, principal: Principal) -> bool:
        return read_text(principal, self.email_column) != ""

    async def start(self, principal: Principal) -> None:
        if self._delivery is None:
            logger.debug("No email link delivery configured")
            return
        if not self.can_start(principal):
            return
        await self._delivery(principal)

    async def verify(
        self,
        principal: Principal,
        submitted: Mapping[str, Any],  # noqa: ARG002
    ) -> bool:
        return self.is_satisfied(principal)

    def is_satisfied(self, principal: Principal) -> bool:
        return is_filled(principal.get(self.verified_column))


__all__: list[str] = ["EmailVerifyDriver"]

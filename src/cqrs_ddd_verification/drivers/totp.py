"""Authenticator app (TOTP) step."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from ..totp import TotpAlgorithm
from .base import BaseStepDriver, is_filled, read_text

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from ..config import ColumnsConfig, TotpStep
    from ..principal import Principal


class TotpDriver(BaseStepDriver):
    """Validates codes from an authenticator app against the stored secret.

    The principal handed to :meth:`verify` must carry the plaintext Base32
    secret; decrypting the stored value is the caller's job. Enrollment
    (QR code, secret generation) is driven externally, so :meth:`start`
    does nothing.
    """

    default_label = "Authenticator App (TOTP)"

    def __init__(
        self,
        config: TotpStep,
        columns: ColumnsConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(config, columns)
        self._totp_config = config
        self._clock = clock
        self._algorithm = TotpAlgorithm(
            digits=config.digits,
            period=config.period,
            algorithm=config.algorithm,
            drift=config.drift,
        )

    @property
    def algorithm(self) -> TotpAlgorithm:
        return self._algorithm

    @property
    def issuer(self) -> str:
        return self._totp_config.issuer

    @property
    def secret_column(self) -> str:
        return self.column("secret", self._columns.totp_secret)

    @property
    def verified_column(self) -> str:
        return self.column("verified_at", self._columns.totp_verified_at)

    def expected_fields(self) -> dict[str, str]:
        return {"code": f"string|digits|length:{self._algorithm.digits}"}

    def can_start(self, principal: Principal) -> bool:
        return read_text(principal, self.secret_column) != ""

    async def start(self, principal: Principal) -> None:  # noqa: ARG002
        return None

    async def verify(self, principal: Principal, submitted: Mapping[str, Any]) -> bool:
        secret = read_text(principal, self.secret_column)
        code = str(submitted.get("code") or "").strip()
        if not secret or not code:
            return False
        return self._algorithm.verify(secret, code, self._clock())

    def is_satisfied(self, principal: Principal) -> bool:
        """Verified-at column when one is mapped, otherwise "has a secret"."""
        if self.verified_column:
            return is_filled(principal.get(self.verified_column))
        return self.can_start(principal)


__all__: list[str] = ["TotpDriver"]

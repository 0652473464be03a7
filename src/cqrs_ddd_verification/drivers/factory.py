"""Dispatch from a typed step config to its driver."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from ..config import EmailOtpStep, EmailVerifyStep, SmsOtpStep, TotpStep
from ..exceptions import UnknownDriverError
from ..transport import DummySmsTransport
from .email_verify import EmailVerifyDriver
from .otp import EmailOtpDriver, SmsOtpDriver
from .totp import TotpDriver

if TYPE_CHECKING:
    from collections.abc import Callable

    from ..config import ColumnsConfig, StepConfig
    from ..ports import EmailLinkDelivery, EmailOtpDelivery, ISmsTransport
    from ..storage import OtpIssuanceStore
    from .base import IStepDriver

logger = logging.getLogger("cqrs_ddd.verification.drivers")


def build_driver(
    config: StepConfig,
    *,
    columns: ColumnsConfig,
    store: OtpIssuanceStore,
    identity_field: str = "id",
    otp_length: int = 6,
    sms_transport: ISmsTransport | None = None,
    email_otp_delivery: EmailOtpDelivery | None = None,
    email_link_delivery: EmailLinkDelivery | None = None,
    clock: Callable[[], float] = time.time,
) -> IStepDriver:
    """Create the driver for ``config``.

    Raises:
        UnknownDriverError: ``config`` is not one of the built-in step types.
    """
    if isinstance(config, EmailVerifyStep):
        return EmailVerifyDriver(config, columns, delivery=email_link_delivery)

    if isinstance(config, EmailOtpStep):
        return EmailOtpDriver(
            config,
            columns,
            store,
            delivery=email_otp_delivery,
            identity_field=identity_field,
            default_length=otp_length,
        )

    if isinstance(config, SmsOtpStep):
        if sms_transport is None:
            logger.warning("No SMS transport configured, using DummySmsTransport")
            sms_transport = DummySmsTransport()
        return SmsOtpDriver(
            config,
            columns,
            store,
            transport=sms_transport,
            identity_field=identity_field,
            default_length=otp_length,
        )

    if isinstance(config, TotpStep):
        return TotpDriver(config, columns, clock=clock)

    raise UnknownDriverError(type(config).__name__)


__all__: list[str] = ["build_driver"]

"""Wire a :class:`VerificationFlow` from :class:`VerificationSettings`."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from .adapters.memory import InMemoryCacheService
from .drivers.factory import build_driver
from .exceptions import ConfigurationError
from .flow import VerificationFlow
from .orchestrator import StepOrchestrator
from .security import create_crypto
from .storage import OtpIssuanceStore
from .transport import create_sms_transport

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .config import VerificationSettings
    from .drivers.base import IStepDriver
    from .ports import (
        EmailLinkDelivery,
        EmailOtpDelivery,
        ICacheService,
        ILockStrategy,
        IRouteResolver,
        ISmsTransport,
    )
    from .security import ICryptoProvider
    from .transport import TransportSpec

logger = logging.getLogger("cqrs_ddd.verification")


def _step_backends(
    settings: VerificationSettings,
    backends: Mapping[str, ICacheService] | None,
) -> dict[str, ICacheService]:
    resolved: dict[str, ICacheService] = {}
    for step, name in settings.storage.step_backends.items():
        cache = (backends or {}).get(name)
        if cache is None:
            raise ConfigurationError(
                f"Step {step!r} uses unknown cache backend {name!r}"
            )
        resolved[step] = cache
    return resolved


def build_verification(
    settings: VerificationSettings | None = None,
    *,
    cache: ICacheService | None = None,
    lock: ILockStrategy | None = None,
    backends: Mapping[str, ICacheService] | None = None,
    sms_transport: ISmsTransport | None = None,
    sms_transports: Mapping[str, TransportSpec] | None = None,
    email_otp_delivery: EmailOtpDelivery | None = None,
    email_link_delivery: EmailLinkDelivery | None = None,
    resolver: IRouteResolver | None = None,
    crypto: ICryptoProvider | None = None,
    clock: Callable[[], float] = time.time,
) -> VerificationFlow:
    """Build the store, drivers, orchestrator and flow for ``settings``.

    Args:
        settings: Defaults to :class:`VerificationSettings` read from the
            environment.
        cache: Default challenge cache; an in-process cache when omitted.
        lock: Per-key lock for the store.
        backends: Named caches referenced by ``storage.step_backends``.
        sms_transport: Explicit transport; otherwise ``sms.default_transport``
            is looked up in ``sms_transports``.
        crypto: Explicit crypto driver; otherwise built from ``crypto``
            settings (None when no key is configured).
        clock: Unix time source shared by the store and TOTP checks.

    Raises:
        ConfigurationError: Unknown backend, transport or crypto driver, or
            an invalid crypto key.
    """
    if settings is None:
        from .config import VerificationSettings

        settings = VerificationSettings()

    if cache is None:
        logger.info("No cache configured, one-time codes are kept in process memory")
        cache = InMemoryCacheService()

    store = OtpIssuanceStore(
        cache,
        lock=lock,
        config=settings.storage,
        backends=_step_backends(settings, backends),
        clock=lambda: int(clock()),
    )

    if crypto is None:
        crypto = create_crypto(
            settings.crypto.driver, settings.crypto.key.get_secret_value()
        )
    if crypto is None:
        logger.warning("No crypto key configured, TOTP secrets are stored in clear")

    configs = settings.step_configs()
    if sms_transport is None and configs["sms_otp"].enabled:
        sms_transport = create_sms_transport(
            settings.sms.default_transport, sms_transports
        )

    drivers: dict[str, IStepDriver] = {
        key: build_driver(
            config,
            columns=settings.columns,
            store=store,
            identity_field=settings.identity_field,
            otp_length=settings.otp_length,
            sms_transport=sms_transport,
            email_otp_delivery=email_otp_delivery,
            email_link_delivery=email_link_delivery,
            clock=clock,
        )
        for key, config in configs.items()
        if config.enabled
    }

    orchestrator = StepOrchestrator(
        settings.required_setup_steps,
        drivers,
        disabled_steps=[key for key, config in configs.items() if not config.enabled],
        preferences_column=settings.columns.verification_preferences,
        next_route=settings.routing.next_route,
        resolver=resolver,
        enabled=settings.enabled,
    )
    logger.debug("Verification steps: %s", orchestrator.enabled_steps())

    return VerificationFlow(
        orchestrator,
        routing=settings.routing,
        columns=settings.columns,
        steps=configs,
        resolver=resolver,
        crypto=crypto,
        identity_field=settings.identity_field,
    )


__all__: list[str] = ["build_verification"]

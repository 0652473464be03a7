"""SMS transport messages, the dummy transport and the transport factory."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .exceptions import UnknownTransportError
from .ports import ISmsTransport
from .value_object import ValueObject

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger("cqrs_ddd.verification.transport")


class SmsMessage(ValueObject):
    recipient: str
    body: str
    sender: str | None = None


class SmsResult(ValueObject):
    """Outcome reported by an SMS gateway.

    Attributes:
        success: Whether the gateway accepted the message.
        error: Gateway error description when ``success`` is False.
        message: The message that was sent.
        provider_id: Gateway message identifier, if any.
        status_code: Gateway status code, if any.
        retry_after: Seconds the gateway asked us to wait, if any.
    """

    success: bool = True
    error: str | None = None
    message: SmsMessage | None = None
    provider_id: str | None = None
    status_code: int | None = None
    retry_after: int | None = None


class DummySmsTransport(ISmsTransport):
    """Development transport: logs each message and keeps it in memory."""

    name = "dummy"

    def __init__(self) -> None:
        self.sent: list[SmsMessage] = []

    @property
    def last_message(self) -> SmsMessage | None:
        return self.sent[-1] if self.sent else None

    async def send(self, message: SmsMessage) -> SmsResult:
        self.sent.append(message)
        logger.info("Dummy SMS sent to %s", message.recipient)
        return SmsResult(success=True, message=message)


TransportSpec = ISmsTransport | type[ISmsTransport] | Callable[[], ISmsTransport]

DEFAULT_TRANSPORTS: dict[str, TransportSpec] = {"default": DummySmsTransport}


def create_sms_transport(
    name: str,
    transports: Mapping[str, TransportSpec] | None = None,
) -> ISmsTransport:
    """Resolve a transport by name.

    Args:
        name: ``dummy`` or a key of ``transports``.
        transports: Name -> transport instance, class or zero-arg factory.
            Merged over :data:`DEFAULT_TRANSPORTS`.

    Raises:
        UnknownTransportError: ``name`` is not registered or does not
            produce an :class:`ISmsTransport`.
    """
    if name == "dummy":
        return DummySmsTransport()

    registry = {**DEFAULT_TRANSPORTS, **(transports or {})}
    spec = registry.get(name)
    if spec is None:
        raise UnknownTransportError(f"Unknown transport: {name!r}")

    # Classes structurally match the protocol too, so check for them first.
    if not isinstance(spec, type) and isinstance(spec, ISmsTransport):
        transport = spec
    elif callable(spec):
        transport = spec()
    else:
        raise UnknownTransportError(f"Invalid transport definition: {name!r}")

    if not isinstance(transport, ISmsTransport):
        raise UnknownTransportError(f"Invalid transport definition: {name!r}")
    return transport


__all__: list[str] = [
    "SmsMessage",
    "SmsResult",
    "DummySmsTransport",
    "DEFAULT_TRANSPORTS",
    "create_sms_transport",
]

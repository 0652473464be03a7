"""Collaborator protocols consumed by the verification engine.

Storage, locking and delivery are injected explicitly; nothing here is a
process-wide global.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .principal import Principal

if TYPE_CHECKING:
    from .transport import SmsMessage, SmsResult


@runtime_checkable
class ICacheService(Protocol):
    """Key-value store holding OTP challenges and rate windows."""

    async def get(self, key: str, cls: type[Any] | None = None) -> Any | None:
        """
        Retrieve a value by key. Returns None if missing.
        If cls is provided and is a Pydantic model, validation is performed.
        """
        ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Set a value with optional TTL (in seconds)."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a value by key."""
        ...


@runtime_checkable
class ILockStrategy(Protocol):
    """Per-key mutual exclusion around read-modify-write cycles.

    Example:
        ```python
        token = await lock.acquire("otp:sms_otp:42", timeout=5.0, ttl=10.0)
        try:
            ...
        finally:
            await lock.release("otp:sms_otp:42", token)
        ```
    """

    async def acquire(
        self,
        key: str,
        *,
        timeout: float = 5.0,
        ttl: float = 10.0,
    ) -> str:
        """
        Acquire the lock for ``key``.

        Args:
            key: Lock name.
            timeout: Maximum seconds to wait.
            ttl: Seconds after which a crashed holder's lock auto-expires.

        Returns:
            A token required for release.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired in time.
        """
        ...

    async def release(self, key: str, token: str) -> None:
        """Release a previously acquired lock."""
        ...


@runtime_checkable
class ISmsTransport(Protocol):
    """SMS gateway adapter."""

    name: str

    async def send(self, message: SmsMessage) -> SmsResult:
        """Deliver ``message``. Gateway failures are reported in the result."""
        ...


@runtime_checkable
class IRouteResolver(Protocol):
    """Turns an abstract route descriptor into an absolute URL."""

    def resolve(self, route: Mapping[str, str]) -> str:
        """
        Resolve ``route`` to a URL.

        Raises:
            RouteResolutionError: If the descriptor cannot be resolved.
        """
        ...


EmailOtpDelivery = Callable[[Principal, str], Awaitable[None]]
"""Sends an email one-time code: ``(principal, code)``."""

EmailLinkDelivery = Callable[[Principal], Awaitable[None]]
"""Sends an email confirmation link: ``(principal)``."""


__all__: list[str] = [
    "ICacheService",
    "ILockStrategy",
    "ISmsTransport",
    "IRouteResolver",
    "EmailOtpDelivery",
    "EmailLinkDelivery",
]

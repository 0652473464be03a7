"""VerificationResult value object and route resolution helpers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

from pydantic import Field

from .exceptions import RouteResolutionError
from .principal import Principal
from .steps import normalize_step_name, normalize_steps
from .value_object import ValueObject

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from .ports import IRouteResolver

logger = logging.getLogger("cqrs_ddd.verification.result")

_OPTIONAL_ROUTE_KEYS = ("plugin", "prefix")


def normalize_route(route: Mapping[str, Any]) -> dict[str, str]:
    """Drop empty ``plugin``/``prefix`` hints and ``None`` values."""
    normalized: dict[str, str] = {}
    for key, value in route.items():
        if value is None:
            continue
        if key in _OPTIONAL_ROUTE_KEYS and (value is False or value == ""):
            continue
        normalized[key] = str(value)
    return normalized


def resolve_url(route: Mapping[str, str], resolver: IRouteResolver | None) -> str:
    """Resolve ``route`` to a URL; unresolvable routes give ``""``."""
    if not route or resolver is None:
        return ""
    try:
        return resolver.resolve(route)
    except RouteResolutionError as e:
        logger.debug("Route %s could not be resolved: %s", route, e)
        return ""


class VerificationResult(ValueObject):
    """Immutable outcome of evaluating a principal.

    Attributes:
        principal: The evaluated principal, if any.
        pending_steps: Normalized, unique step keys still outstanding.
        next_route: Abstract destination for the first pending step.
        next_url: ``next_route`` resolved to an absolute URL ("" if not).

    Every ``with_*`` method returns a new instance.
    """

    principal: Principal | None = None
    pending_steps: tuple[str, ...] = ()
    next_route: dict[str, str] = Field(default_factory=dict)
    next_url: str = ""

    @classmethod
    def build(
        cls,
        principal: Principal | None,
        pending_steps: Iterable[str],
        next_route: Mapping[str, Any] | None = None,
        resolver: IRouteResolver | None = None,
    ) -> VerificationResult:
        route = normalize_route(next_route or {})
        return cls(
            principal=principal,
            pending_steps=tuple(normalize_steps(pending_steps)),
            next_route=route,
            next_url=resolve_url(route, resolver),
        )

    @property
    def is_verified(self) -> bool:
        return not self.pending_steps

    @property
    def first_pending_step(self) -> str | None:
        return self.pending_steps[0] if self.pending_steps else None

    def has_step(self, step: str) -> bool:
        return normalize_step_name(step) in self.pending_steps

    def with_next_route(
        self,
        route: Mapping[str, Any],
        resolver: IRouteResolver | None = None,
    ) -> VerificationResult:
        normalized = normalize_route(route)
        return self.model_copy(
            update={"next_route": normalized, "next_url": resolve_url(normalized, resolver)}
        )

    def without_step(self, step: str) -> VerificationResult:
        needle = normalize_step_name(step)
        return self.model_copy(
            update={"pending_steps": tuple(s for s in self.pending_steps if s != needle)}
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "verified": self.is_verified,
            "first_pending_step": self.first_pending_step,
            "pending_steps": list(self.pending_steps),
            "next_route": dict(self.next_route),
            "next_url": self.next_url,
        }


class BaseUrlRouteResolver:
    """Resolve route descriptors to ``{base_url}/{prefix}/{plugin}/{controller}/{action}/{pass}``.

    Path parts are lower-cased and URL-quoted; unknown keys become the query
    string. A descriptor with neither ``controller`` nor ``action`` cannot
    be resolved.

    Example:
        ```python
        resolver = BaseUrlRouteResolver("https://app.example.com")
        resolver.resolve({"controller": "Users", "action": "verify", "pass": "sms-otp"})
        # 'https://app.example.com/users/verify/sms-otp'
        ```
    """

    _PATH_KEYS = ("prefix", "plugin", "controller", "action", "pass")

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    def resolve(self, route: Mapping[str, str]) -> str:
        if not route.get("controller") and not route.get("action"):
            raise RouteResolutionError(f"Route has no controller or action: {route}")

        parts = [
            quote(route[key].lower() if key != "pass" else route[key], safe="")
            for key in self._PATH_KEYS
            if route.get(key)
        ]
        url = "/".join([self._base_url, *parts])

        query = {k: v for k, v in route.items() if k not in self._PATH_KEYS}
        if query:
            url = f"{url}?{urlencode(sorted(query.items()))}"
        return url


__all__: list[str] = [
    "VerificationResult",
    "BaseUrlRouteResolver",
    "normalize_route",
    "resolve_url",
]

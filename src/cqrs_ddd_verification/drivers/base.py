"""IStepDriver - protocol and shared helpers for verification step drivers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ..config import ColumnsConfig, StepConfig
    from ..principal import Principal
    from ..steps import StepKind


def is_filled(value: Any) -> bool:
    """True unless ``value`` is None, False or an empty string."""
    return value is not None and value is not False and value != ""


def read_text(principal: Principal, field: str) -> str:
    value = principal.get(field)
    if value is None or value is False:
        return ""
    return str(value)


@runtime_checkable
class IStepDriver(Protocol):
    """Policy for one verification step.

    Drivers never persist anything. ``verify`` reports per-attempt failures
    as ``False``; configuration problems raise.
    """

    @property
    def key(self) -> str:
        """Canonical step key (``email_verify``, ``sms_otp`` ...)."""
        ...

    @property
    def kind(self) -> StepKind: ...

    @property
    def label(self) -> str: ...

    @property
    def requires_input(self) -> bool:
        """Whether the user must submit something (a code) to verify."""
        ...

    def can_start(self, principal: Principal) -> bool:
        """Whether the prerequisite data (email, phone, secret) is present."""
        ...

    async def start(self, principal: Principal) -> None:
        """Generate and hand off whatever the step delivers."""
        ...

    async def verify(self, principal: Principal, submitted: Mapping[str, Any]) -> bool:
        """Validate ``submitted`` (usually ``{"code": ...}``)."""
        ...

    def is_satisfied(self, principal: Principal) -> bool:
        """Whether stored data already marks this step as done."""
        ...

    def expected_fields(self) -> dict[str, str]:
        """Input field name -> validation hint for the caller's form."""
        ...


class BaseStepDriver:
    """Column resolution and identity shared by the concrete drivers."""

    default_label = ""

    def __init__(self, config: StepConfig, columns: ColumnsConfig) -> None:
        self._config = config
        self._columns = columns

    @property
    def config(self) -> StepConfig:
        return self._config

    @property
    def key(self) -> str:
        return self._config.key

    @property
    def kind(self) -> StepKind:
        return self._config.kind

    @property
    def label(self) -> str:
        return self._config.label or self.default_label

    @property
    def requires_input(self) -> bool:
        return True

    def column(self, alias: str, default: str) -> str:
        """External column for ``alias``, honoring the step's ``field_map``."""
        return self._config.field_map.get(alias, default)

    def expected_fields(self) -> dict[str, str]:
        return {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r})"


__all__: list[str] = ["IStepDriver", "BaseStepDriver", "is_filled", "read_text"]

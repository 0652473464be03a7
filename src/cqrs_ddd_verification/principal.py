"""Principal value object: the already-authenticated identity being verified.

The engine only reads ``data``; writing verified-at timestamps or encrypted
secrets back to the user record is the caller's job.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from .value_object import ValueObject


class Principal(ValueObject):
    """Immutable snapshot of an authenticated identity.

    Attributes:
        data: Column name -> value map of the user record (email, phone,
            encrypted TOTP secret, verified-at timestamps, preferences).
        login_required: A fresh login is in progress; OTP steps must be
            re-checked even when already satisfied.
        login_code_sent: The login code for this login has been issued.
        login_triggered_id: Identifier of the principal the login flow was
            started for, so repeated starts are idempotent.

    Example:
        ```python
        principal = Principal(data={"id": 42, "email": "jane@example.com"})
        principal = principal.with_login_state(login_required=True)
        ```
    """

    data: dict[str, Any] = Field(default_factory=dict)
    login_required: bool = False
    login_code_sent: bool = False
    login_triggered_id: str | None = None

    @property
    def login_in_progress(self) -> bool:
        return self.login_required

    def get(self, field: str, default: Any = None) -> Any:
        return self.data.get(field, default)

    def with_data(self, updates: dict[str, Any] | None = None, **fields: Any) -> Principal:
        """Return a copy whose ``data`` has ``updates`` merged in."""
        merged = {**self.data, **(updates or {}), **fields}
        return self.model_copy(update={"data": merged})

    def with_login_state(
        self,
        *,
        login_required: bool | None = None,
        login_code_sent: bool | None = None,
        login_triggered_id: str | None = None,
    ) -> Principal:
        """Return a copy with the given login flags replaced."""
        return self.replace(
            login_required=login_required,
            login_code_sent=login_code_sent,
            login_triggered_id=login_triggered_id,
        )

    def without_login_state(self) -> Principal:
        """Return a copy with every login flag cleared."""
        return self.model_copy(
            update={
                "login_required": False,
                "login_code_sent": False,
                "login_triggered_id": None,
            }
        )


__all__: list[str] = ["Principal"]

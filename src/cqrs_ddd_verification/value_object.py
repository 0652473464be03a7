"""Frozen pydantic base shared by principals, results and SMS messages."""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict

_V = TypeVar("_V", bound="ValueObject")


class ValueObject(BaseModel):
    """Immutable model compared and hashed by its dumped fields.

    Instances are never mutated; :meth:`replace` returns a validated copy.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def replace(self: _V, **changes: Any) -> _V:
        """Copy with ``changes`` applied, skipping fields set to None."""
        update = {name: value for name, value in changes.items() if value is not None}
        if not update:
            return self
        return self.model_copy(update=update)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.model_dump() == other.model_dump()

    def __hash__(self) -> int:
        # Principal data holds dicts and lists; the JSON dump is hashable.
        return hash(self.model_dump_json())

"""Step keys and their canonical (snake_case) spelling."""

from __future__ import annotations

import re
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class StepKind(str, Enum):
    """The closed set of built-in verification steps."""

    EMAIL_VERIFY = "email_verify"
    EMAIL_OTP = "email_otp"
    SMS_OTP = "sms_otp"
    TOTP = "totp"

    @property
    def is_otp(self) -> bool:
        """Whether the step is one of the interchangeable code-based factors."""
        return self is not StepKind.EMAIL_VERIFY


CHOOSE_VERIFICATION = "choose_verification"
"""Synthetic pending step: the user must pick an OTP method first."""

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_INVALID = re.compile(r"[^a-z0-9_]")
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")


def normalize_step_name(name: str) -> str:
    """Canonicalize a step key.

    ``emailVerify``, ``email-verify``, ``EMAIL_VERIFY`` and ``Email Verify``
    all become ``email_verify``. Returns ``""`` for blank input.
    """
    value = name.strip().replace("-", "_").replace(" ", "_")
    value = _CAMEL_BOUNDARY.sub("_", value).lower()
    value = _INVALID.sub("_", value)
    return _REPEATED_UNDERSCORE.sub("_", value).strip("_")


def normalize_steps(steps: str | Iterable[str] | None) -> list[str]:
    """Normalize a CSV string or iterable of keys into an ordered unique list.

    Empty entries are dropped; the first occurrence of a duplicate wins.
    """
    if steps is None:
        return []
    items = steps.split(",") if isinstance(steps, str) else steps

    result: list[str] = []
    for item in items:
        key = normalize_step_name(str(item))
        if key and key not in result:
            result.append(key)
    return result


def dasherize(step: str) -> str:
    """Route-parameter form of a step key (``sms_otp`` -> ``sms-otp``)."""
    return step.replace("_", "-")


__all__: list[str] = [
    "StepKind",
    "CHOOSE_VERIFICATION",
    "normalize_step_name",
    "normalize_steps",
    "dasherize",
]

"""Verification step drivers.

One driver per built-in step:
- ``email_verify``: confirmation link (:class:`EmailVerifyDriver`)
- ``email_otp``: code sent by email (:class:`EmailOtpDriver`)
- ``sms_otp``: code sent by SMS (:class:`SmsOtpDriver`)
- ``totp``: authenticator app (:class:`TotpDriver`)
"""

from cqrs_ddd_verification.drivers.base import BaseStepDriver, IStepDriver, is_filled, read_text
from cqrs_ddd_verification.drivers.email_verify import EmailVerifyDriver
from cqrs_ddd_verification.drivers.factory import build_driver
from cqrs_ddd_verification.drivers.otp import (
    EmailOtpDriver,
    OtpStepDriver,
    SmsOtpDriver,
    generate_numeric_code,
    normalize_e164,
    normalize_submitted_code,
)
from cqrs_ddd_verification.drivers.totp import TotpDriver

__all__: list[str] = [
    "IStepDriver",
    "BaseStepDriver",
    "OtpStepDriver",
    "EmailVerifyDriver",
    "EmailOtpDriver",
    "SmsOtpDriver",
    "TotpDriver",
    "build_driver",
    "is_filled",
    "read_text",
    "generate_numeric_code",
    "normalize_e164",
    "normalize_submitted_code",
]

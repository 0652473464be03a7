"""cqrs-ddd-verification — Post-authentication verification steps.

Email confirmation links, email and SMS one-time codes and authenticator
apps (TOTP), evaluated in a configurable order against an already
authenticated principal.
"""

from __future__ import annotations

# ── Adapters ────────────────────────────────────────────────────
from .adapters.memory import InMemoryCacheService, InMemoryLockStrategy

# ── Configuration ───────────────────────────────────────────────
from .config import (
    ColumnsConfig,
    CryptoConfig,
    EmailOtpStep,
    EmailVerifyStep,
    RoutingConfig,
    SmsConfig,
    SmsOtpStep,
    StorageConfig,
    TotpStep,
    VerificationSettings,
)

# ── Drivers ─────────────────────────────────────────────────────
from .drivers import (
    EmailOtpDriver,
    EmailVerifyDriver,
    IStepDriver,
    SmsOtpDriver,
    TotpDriver,
    build_driver,
)

# ── Exceptions ──────────────────────────────────────────────────
from .exceptions import (
    ConfigurationError,
    CryptoError,
    DecryptionFailedError,
    IdentityKeyMissingError,
    InvalidKeyError,
    InvalidPayloadError,
    LockAcquisitionError,
    OtpIssuanceError,
    RateLimitExceededError,
    ResendCooldownActiveError,
    RouteResolutionError,
    StorageError,
    UnknownDriverError,
    UnknownTransportError,
    UnsupportedAlgorithmError,
    VerificationError,
)
from .factory import build_verification
from .flow import PrincipalUpdate, TotpEnrollment, VerificationFlow
from .observability import VerificationMetrics
from .orchestrator import StepOrchestrator, compute_pending

# ── Ports ───────────────────────────────────────────────────────
from .ports import ICacheService, ILockStrategy, IRouteResolver, ISmsTransport
from .principal import Principal
from .result import BaseUrlRouteResolver, VerificationResult

# ── Security ────────────────────────────────────────────────────
from .security import AesGcmCrypto, ICryptoProvider, SecretBoxCrypto, create_crypto
from .steps import CHOOSE_VERIFICATION, StepKind
from .storage import OtpChallenge, OtpIssuanceStore
from .totp import TotpAlgorithm, generate_secret, provisioning_uri, verify_totp
from .transport import DummySmsTransport, SmsMessage, SmsResult, create_sms_transport

__all__: list[str] = [
    # Flow
    "VerificationFlow",
    "PrincipalUpdate",
    "TotpEnrollment",
    "build_verification",
    "StepOrchestrator",
    "compute_pending",
    "VerificationResult",
    "BaseUrlRouteResolver",
    "Principal",
    "StepKind",
    "CHOOSE_VERIFICATION",
    # Configuration
    "VerificationSettings",
    "StorageConfig",
    "CryptoConfig",
    "RoutingConfig",
    "ColumnsConfig",
    "SmsConfig",
    "EmailVerifyStep",
    "EmailOtpStep",
    "SmsOtpStep",
    "TotpStep",
    # Drivers
    "IStepDriver",
    "EmailVerifyDriver",
    "EmailOtpDriver",
    "SmsOtpDriver",
    "TotpDriver",
    "build_driver",
    # Storage
    "OtpIssuanceStore",
    "OtpChallenge",
    "InMemoryCacheService",
    "InMemoryLockStrategy",
    # Ports
    "ICacheService",
    "ILockStrategy",
    "IRouteResolver",
    "ISmsTransport",
    # Security
    "ICryptoProvider",
    "AesGcmCrypto",
    "SecretBoxCrypto",
    "create_crypto",
    # TOTP
    "TotpAlgorithm",
    "generate_secret",
    "provisioning_uri",
    "verify_totp",
    # SMS
    "SmsMessage",
    "SmsResult",
    "DummySmsTransport",
    "create_sms_transport",
    # Observability
    "VerificationMetrics",
    # Exceptions
    "VerificationError",
    "ConfigurationError",
    "UnknownDriverError",
    "UnsupportedAlgorithmError",
    "InvalidKeyError",
    "UnknownTransportError",
    "CryptoError",
    "InvalidPayloadError",
    "DecryptionFailedError",
    "OtpIssuanceError",
    "RateLimitExceededError",
    "ResendCooldownActiveError",
    "IdentityKeyMissingError",
    "StorageError",
    "LockAcquisitionError",
    "RouteResolutionError",
]

"""Client for the Avi Controller REST API with session, retry and file service support."""

from .config import (
    AviSettings,
    SessionConfig,
    DEFAULT_API_TENANT,
    DEFAULT_API_TIMEOUT,
    DEFAULT_AVI_VERSION,
    get_settings,
)
from .exceptions import (
    AviError,
    AviConnectionError,
    AviRetryExhaustedError,
    ControllerUnavailableError,
    AviDecodeError,
    AviHTTPError,
    AviAuthenticationError,
    AviPermissionError,
    AviResourceNotFoundError,
    AviConflictError,
    AviObjectLookupError,
    ObjectNotFoundError,
    AmbiguousObjectError,
    InvalidOptionsError,
    error_from_status_code,
)
from .logging_config import setup_logging
from .options import ApiOptions
from .retry import Outcome, ReadinessProbe, RetryPolicy
from .session import AviSession, CollectionResult, new_session

__all__ = [
    # Session
    "AviSession",
    "CollectionResult",
    "new_session",

    # Configuration
    "AviSettings",
    "SessionConfig",
    "DEFAULT_API_TENANT",
    "DEFAULT_API_TIMEOUT",
    "DEFAULT_AVI_VERSION",
    "get_settings",
    "ApiOptions",

    # Retry
    "Outcome",
    "ReadinessProbe",
    "RetryPolicy",

    # Exceptions
    "AviError",
    "AviConnectionError",
    "AviRetryExhaustedError",
    "ControllerUnavailableError",
    "AviDecodeError",
    "AviHTTPError",
    "AviAuthenticationError",
    "AviPermissionError",
    "AviResourceNotFoundError",
    "AviConflictError",
    "AviObjectLookupError",
    "ObjectNotFoundError",
    "AmbiguousObjectError",
    "InvalidOptionsError",
    "error_from_status_code",

    # Logging
    "setup_logging",
]

"""Exceptions raised by the Avi Controller session client."""

import logging
from typing import Any, Dict, Optional, Type

logger = logging.getLogger(__name__)


class AviError(Exception):
    """Base exception for every failed request against the Avi Controller.

    Carries the HTTP verb and URL of the request that failed, the HTTP status
    code when a response was received, the controller's error message when the
    response had a body, and the underlying exception for transport or
    decoding failures.
    """

    def __init__(
        self,
        verb: str,
        url: str,
        http_status_code: int = 0,
        message: Optional[str] = None,
        original_exception: Optional[BaseException] = None,
        **context: Any,
    ):
        """
        Initialize an Avi error and log it.

        Args:
            verb (str): HTTP verb of the failed request
            url (str): URL of the failed request
            http_status_code (int): Response status code, 0 if no response
            message (Optional[str]): Error message returned by the controller
            original_exception (Optional[BaseException]): Underlying error
            **context: Additional error context
        """
        self.verb = verb
        self.url = url
        self.http_status_code = http_status_code
        self.message = message
        self.original_exception = original_exception
        self.context = context

        log_message = f"{self.__class__.__name__}: {self}"
        if context:
            log_message += f" | Context: {context}"
        logger.error(log_message)

        super().__init__(str(self))

    @property
    def inner_error(self) -> Optional[BaseException]:
        return self.original_exception

    def __str__(self) -> str:
        if self.original_exception is not None:
            detail = f"error: {self.original_exception}"
        elif self.message is not None:
            detail = f"HTTP code: {self.http_status_code}; error from Avi: {self.message}"
        else:
            detail = f"HTTP code: {self.http_status_code}."
        return f"Encountered an error on {self.verb} request to URL {self.url}: {detail}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "verb": self.verb,
            "url": self.url,
            "http_status_code": self.http_status_code,
            "message": self.message,
            "inner_error": str(self.original_exception) if self.original_exception else None,
        }


class AviConnectionError(AviError):
    """Raised when no HTTP response was received (DNS, TLS, timeout, reset)."""
    pass


class AviRetryExhaustedError(AviError):
    """Raised when a request still fails after the last scheduled retry."""

    def __init__(self, verb: str, url: str, **kwargs: Any):
        super().__init__(
            verb,
            url,
            original_exception=RuntimeError("tried 3 times and failed"),
            **kwargs,
        )


class ControllerUnavailableError(AviError):
    """Raised when the readiness probe gives up waiting for the controller."""

    def __init__(self, verb: str, url: str, rounds: int = 0, **kwargs: Any):
        self.rounds = rounds
        super().__init__(
            verb,
            url,
            original_exception=RuntimeError(
                f"controller down: not ready after {rounds} status checks"
            ),
            **kwargs,
        )


class AviDecodeError(AviError):
    """Raised when a successful response body is not valid JSON."""
    pass


class AviHTTPError(AviError):
    """Raised for a non-2xx response that is not recovered by retrying."""
    pass


class AviAuthenticationError(AviHTTPError):
    """Raised for 401 responses that are not recovered by re-login."""
    pass


class AviPermissionError(AviHTTPError):
    """Raised for 403 responses."""
    pass


class AviResourceNotFoundError(AviHTTPError):
    """Raised for 404 responses."""
    pass


class AviConflictError(AviHTTPError):
    """Raised for 409 responses."""
    pass


class AviObjectLookupError(AviError):
    """Raised when a query by name does not resolve to exactly one object."""

    def __init__(self, obj: str, name: str, count: int, verb: str, url: str, **kwargs: Any):
        self.obj = obj
        self.name = name
        self.count = count
        super().__init__(verb, url, original_exception=LookupError(self.describe()), **kwargs)

    def describe(self) -> str:
        return f"{self.count} objects of type {self.obj} with name {self.name} found"


class ObjectNotFoundError(AviObjectLookupError):
    """No object of the requested type carries the requested name."""

    def describe(self) -> str:
        return f"No object of type {self.obj} with name {self.name} is found"


class AmbiguousObjectError(AviObjectLookupError):
    """More than one object of the requested type carries the requested name."""

    def describe(self) -> str:
        return f"More than one object of type {self.obj} with name {self.name} is found"


class InvalidOptionsError(ValueError):
    """Raised when object query options cannot be turned into a URI."""
    pass


def error_from_status_code(
    status_code: int,
    verb: str,
    url: str,
    message: Optional[str] = None,
    **kwargs: Any,
) -> AviHTTPError:
    """
    Map an HTTP status code to the matching exception.

    Args:
        status_code (int): HTTP status code
        verb (str): HTTP verb of the request
        url (str): URL of the request
        message (Optional[str]): Stringified controller error body
        **kwargs: Additional context

    Returns:
        AviHTTPError: Appropriate exception for the status code
    """
    error_map: Dict[int, Type[AviHTTPError]] = {
        401: AviAuthenticationError,
        403: AviPermissionError,
        404: AviResourceNotFoundError,
        409: AviConflictError,
    }

    exception_class = error_map.get(status_code, AviHTTPError)
    return exception_class(verb, url, http_status_code=status_code, message=message, **kwargs)

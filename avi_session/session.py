"""Authenticated, retrying session against the Avi Controller REST API."""

import itertools
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Dict, List, Optional

import httpx

from .config import AviSettings, SessionConfig, DEFAULT_API_TENANT, get_settings
from .exceptions import (
    AviConnectionError,
    AviDecodeError,
    AviError,
    AviHTTPError,
    AmbiguousObjectError,
    ObjectNotFoundError,
    error_from_status_code,
)
from .options import ApiOptions, make_options
from .retry import (
    CLUSTER_STATUS_URI,
    LOGIN_URI,
    Outcome,
    ReadinessProbe,
    RetryPolicy,
)

logger = logging.getLogger(__name__)

FILESERVICE_URI = "api/fileservice/"
INITIAL_DATA_URI = "api/initial-data"
JSON_CONTENT_TYPE = "application/json"


@dataclass
class CollectionResult:
    """The controller's paging envelope around list responses."""

    count: int = 0
    results: List[Any] = field(default_factory=list)


class AviSession:
    """Session to one Avi Controller.

    Keeps the CSRF token and session id issued by the controller and mirrors
    them into every request, logs in again when the session expires, and
    retries transient failures on a fixed backoff schedule. Every dispatch,
    re-login included, runs under one re-entrant lock, so a session may be
    shared between threads but its requests are executed one at a time in
    call order.
    """

    def __init__(
        self,
        config: SessionConfig,
        client: Optional[httpx.Client] = None,
        retry_policy: Optional[RetryPolicy] = None,
        readiness_probe: Optional[ReadinessProbe] = None,
    ):
        """Create a session without contacting the controller.

        Args:
            config: Session configuration.
            client: Pre-configured HTTP client. If None, one is created lazily
                from the config.
            retry_policy: Retry schedule. Defaults to 0/100ms/500ms/1s.
            readiness_probe: Controller status probe used after 5xx responses.
        """
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self.readiness_probe = readiness_probe or ReadinessProbe()

        self.tenant = config.tenant or DEFAULT_API_TENANT
        self.auth_token = config.auth_token
        self.csrf_token = ""
        self.sessionid = ""

        self._client = client
        self._owns_client = client is None
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, settings: Optional[AviSettings] = None, **overrides) -> "AviSession":
        """Create and log in a session configured from AVI_* environment settings."""
        settings = settings or get_settings()
        session = cls(settings.to_session_config(**overrides))
        session.initiate_session()
        return session

    @property
    def prefix(self) -> str:
        return self.config.prefix

    @property
    def version(self) -> str:
        return self.config.version

    @property
    def is_token_auth(self) -> bool:
        return self.auth_token != "" or self.config.refresh_auth_token is not None

    @property
    def client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            client_args: Dict[str, Any] = {
                "verify": not self.config.insecure,
                "timeout": httpx.Timeout(self.config.timeout),
                "follow_redirects": False,
            }
            if self.config.transport is not None:
                client_args["transport"] = self.config.transport
            self._client = httpx.Client(**client_args)
        return self._client

    def switch_tenant(self, tenant: str) -> None:
        """Change the default tenant for subsequent requests."""
        self.tenant = tenant or DEFAULT_API_TENANT

    def get_tenant(self) -> str:
        return self.tenant

    # Request building

    def _url(self, uri: str) -> str:
        return self.prefix + uri.lstrip("/")

    def _new_request(self, verb: str, url: str, **kwargs) -> httpx.Request:
        """Build a request that bypasses the client's cookie jar.

        The session's own csrf_token and sessionid are the only cookies sent,
        so sessions sharing one client never see each other's cookies.
        """
        return httpx.Request(verb, url, extensions={"timeout": self.client.timeout.as_dict()}, **kwargs)

    def _build_headers(self, tenant: Optional[str] = None) -> Dict[str, str]:
        """Headers every request carries, including the session cookies."""
        headers = {
            "Content-Type": JSON_CONTENT_TYPE,
            "X-Avi-Version": self.version,
            "Referer": self.prefix,
            "X-Avi-Tenant": tenant or self.tenant,
        }
        cookies = []
        if self.csrf_token:
            headers["X-CSRFToken"] = self.csrf_token
            cookies.append("csrftoken=" + self.csrf_token)
        if self.sessionid:
            cookies.append("sessionid=" + self.sessionid)
            cookies.append("avi-sessionid=" + self.sessionid)
        if cookies:
            headers["Cookie"] = "; ".join(cookies)
        return headers

    def _collect_cookies(self, response: httpx.Response) -> None:
        for cookie in response.cookies.jar:
            if cookie.name == "csrftoken":
                self.csrf_token = cookie.value
                logger.debug("Set the csrf token to %s", cookie.value)
            elif cookie.name in ("sessionid", "avi-sessionid"):
                self.sessionid = cookie.value

    # Dispatch and recovery

    def _send_with_recovery(
        self,
        verb: str,
        uri: str,
        url: str,
        build_request: Callable[[], httpx.Request],
        stream: bool = False,
    ) -> httpx.Response:
        """
        Dispatch a request, re-logging in or retrying until it succeeds or fails for good.

        The request is rebuilt on every attempt so it carries the latest cookies.
        The returned response is either a success or a non-retryable failure;
        the caller decides how to read it.

        Raises:
            AviConnectionError: If no response was received
            AviRetryExhaustedError: If the retry schedule is used up
            ControllerUnavailableError: If the controller never became ready
        """
        with self._lock:
            for retry in itertools.count():
                self.retry_policy.pause(retry, verb, url)
                request = build_request()
                logger.debug("Sending %s request for uri %s", verb, url)
                try:
                    response = self.client.send(request, stream=stream)
                except httpx.HTTPError as exc:
                    raise AviConnectionError(
                        verb, url, original_exception=exc, retry_count=retry
                    ) from exc

                self._collect_cookies(response)
                outcome = self.retry_policy.classify(response.status_code, uri, bool(self.sessionid))
                if outcome in (Outcome.SUCCESS, Outcome.FAIL):
                    return response

                response.close()
                self.retry_policy.notify(retry, response.status_code, url)
                if outcome is Outcome.REAUTHENTICATE:
                    self.initiate_session()
                elif outcome is Outcome.PROBE_AND_RETRY:
                    self.readiness_probe.wait_until_ready(self.client, self._url(CLUSTER_STATUS_URI))

    def _error_from_response(self, verb: str, url: str, response: httpx.Response) -> AviHTTPError:
        """Build the error for a failed response, stringifying its JSON body."""
        message = None
        body = response.content
        if body:
            try:
                message = json.dumps(json.loads(body))
            except ValueError:
                message = response.text
        return error_from_status_code(response.status_code, verb, url, message)

    def _rest_request(
        self,
        verb: str,
        uri: str,
        payload: Any = None,
        tenant: Optional[str] = None,
    ) -> bytes:
        """Send a JSON request and return the raw response body (b"" for 204)."""
        uri = uri.lstrip("/")
        url = self._url(uri)
        content = None
        if payload is not None:
            try:
                content = json.dumps(payload, separators=(",", ":")).encode("utf-8")
            except (TypeError, ValueError) as exc:
                raise AviError(verb, url, original_exception=exc) from exc

        def build_request() -> httpx.Request:
            headers = self._build_headers(tenant)
            headers["Accept"] = JSON_CONTENT_TYPE
            return self._new_request(verb, url, content=content, headers=headers)

        response = self._send_with_recovery(verb, uri, url, build_request)
        if response.status_code == 204:
            return b""
        if not 200 <= response.status_code <= 299:
            raise self._error_from_response(verb, url, response)
        return response.content

    def _decode(self, verb: str, uri: str, body: bytes) -> Any:
        if not body:
            return None
        try:
            return json.loads(body)
        except ValueError as exc:
            raise AviDecodeError(verb, self._url(uri), original_exception=exc) from exc

    def _request_json(
        self,
        verb: str,
        uri: str,
        payload: Any = None,
        tenant: Optional[str] = None,
    ) -> Any:
        return self._decode(verb, uri, self._rest_request(verb, uri, payload, tenant))

    # Authentication

    def _seed_csrf_token(self) -> None:
        """Fetch the base URL once to pick up the initial CSRF cookie; the status is ignored."""
        request = self._new_request("GET", self.prefix, headers=self._build_headers())
        try:
            response = self.client.send(request)
        except httpx.HTTPError as exc:
            logger.warning("Initial request to %s failed: %s", self.prefix, exc)
            return
        self._collect_cookies(response)
        response.close()

    def initiate_session(self) -> None:
        """
        Log in to the controller, storing the CSRF token and session id it issues.

        Raises:
            AviAuthenticationError: If the controller rejects the credentials
        """
        with self._lock:
            if self.config.insecure:
                logger.warning("Strict certificate verification is *DISABLED*")

            self._seed_csrf_token()

            if self.config.refresh_auth_token is not None:
                self.auth_token = self.config.refresh_auth_token()

            credentials = {"username": self.config.username}
            if self.is_token_auth:
                credentials["token"] = self.auth_token
            else:
                credentials["password"] = self.config.password

            self._request_json("POST", LOGIN_URI, credentials)
            logger.info("Logged in to %s as %s", self.config.host, self.config.username)

    # Verbs

    def get(self, uri: str, tenant: Optional[str] = None) -> Any:
        """Send GET request and return the decoded JSON body."""
        return self._request_json("GET", uri, tenant=tenant)

    def post(self, uri: str, payload: Any = None, tenant: Optional[str] = None) -> Any:
        """Send POST request and return the decoded JSON body."""
        return self._request_json("POST", uri, payload, tenant)

    def put(self, uri: str, payload: Any = None, tenant: Optional[str] = None) -> Any:
        """Send PUT request and return the decoded JSON body."""
        return self._request_json("PUT", uri, payload, tenant)

    def patch(self, uri: str, payload: Any, patch_op: str, tenant: Optional[str] = None) -> Any:
        """Send PATCH request with body ``{patch_op: payload}``.

        `patch_op` is one of "add", "replace" or "remove"; other values are sent
        as given and rejected by the controller.
        """
        logger.debug("PATCH op %s data %s", patch_op, payload)
        return self._request_json("PATCH", uri, {patch_op: payload}, tenant)

    def delete(self, uri: str, tenant: Optional[str] = None, payload: Any = None) -> Any:
        """Send DELETE request, with an optional JSON body."""
        return self._request_json("DELETE", uri, payload, tenant)

    def get_raw(self, uri: str, tenant: Optional[str] = None) -> bytes:
        return self._rest_request("GET", uri, tenant=tenant)

    def post_raw(self, uri: str, payload: Any = None, tenant: Optional[str] = None) -> bytes:
        return self._rest_request("POST", uri, payload, tenant)

    def get_collection_raw(self, uri: str, tenant: Optional[str] = None) -> CollectionResult:
        """GET a collection and return its ``{count, results}`` envelope."""
        data = self.get(uri, tenant)
        if data is None:
            return CollectionResult()
        if not isinstance(data, dict):
            raise AviDecodeError(
                "GET",
                self._url(uri),
                original_exception=TypeError(f"expected a collection object, got {type(data).__name__}"),
            )
        return CollectionResult(count=data.get("count", 0), results=data.get("results") or [])

    def get_collection(self, uri: str, tenant: Optional[str] = None) -> List[Any]:
        """GET a collection and return the objects in its ``results``."""
        result = self.get_collection_raw(uri, tenant)
        if result.count == 0:
            return []
        return result.results

    def get_uri(self, obj: str, options: Optional[ApiOptions] = None, **kwargs) -> str:
        """Build the query URI that looks up an object of type `obj` by name."""
        return make_options(options, **kwargs).build_uri(obj)

    def get_object(
        self,
        obj: str,
        tenant: Optional[str] = None,
        options: Optional[ApiOptions] = None,
        **kwargs,
    ) -> Any:
        """
        Look up exactly one object by name and optional cloud filters.

        Args:
            obj: Object type, e.g. "pool"
            tenant: Tenant override for this call
            options: Query options; keyword arguments (name, cloud, cloud_uuid,
                skip_default, include_name) override its fields

        Raises:
            InvalidOptionsError: If no name is given
            ObjectNotFoundError: If no object matches
            AmbiguousObjectError: If more than one object matches
        """
        opts = make_options(options, **kwargs)
        uri = opts.build_uri(obj)
        result = self.get_collection_raw(uri, tenant)
        if result.count == 0 or not result.results:
            raise ObjectNotFoundError(obj, opts.name, result.count, "GET", self._url(uri))
        if result.count > 1:
            raise AmbiguousObjectError(obj, opts.name, result.count, "GET", self._url(uri))
        return result.results[0]

    def get_object_by_name(self, obj: str, name: str, tenant: Optional[str] = None) -> Any:
        return self.get_object(obj, tenant, name=name)

    def get_controller_version(self) -> str:
        """Return the controller's software version from its initial-data endpoint."""
        data = self.get(INITIAL_DATA_URI)
        try:
            return data["version"]["Version"]
        except (KeyError, TypeError) as exc:
            raise AviDecodeError("GET", self._url(INITIAL_DATA_URI), original_exception=exc) from exc

    # File service

    def post_multipart(
        self,
        uri: str,
        file: BinaryIO,
        filename: Optional[str] = None,
        tenant: Optional[str] = None,
    ) -> None:
        """
        Upload a file to the controller's file service.

        The file is sent as the ``file`` part of a multipart body together with
        a ``uri`` field naming the destination. The file is rewound before each
        retry and closed when the upload returns.

        Args:
            uri: File service path, e.g. "uploads?x=1"
            file: Binary file object opened for reading
            filename: Name sent for the part; defaults to the file's basename
            tenant: Tenant override for this call
        """
        verb = "POST"
        uri = uri.lstrip("/")
        url = self._url(FILESERVICE_URI + uri)
        name = filename or _part_filename(file)
        form = {"uri": "controller://" + uri.split("?", 1)[0]}

        seekable = getattr(file, "seekable", None)
        start = file.tell() if seekable is not None and seekable() else None

        def build_request() -> httpx.Request:
            if start is not None:
                file.seek(start)
            headers = self._build_headers(tenant)
            # httpx sets the multipart boundary content type
            del headers["Content-Type"]
            return self._new_request(
                verb, url, headers=headers, data=form, files={"file": (name, file)}
            )

        try:
            response = self._send_with_recovery(verb, uri, url, build_request)
            if not 200 <= response.status_code <= 299:
                raise self._error_from_response(verb, url, response)
            logger.info("Uploaded %s to %s (%d)", name, url, response.status_code)
        finally:
            close = getattr(file, "close", None)
            if callable(close):
                close()

    def get_multipart(self, uri: str, file: BinaryIO, tenant: Optional[str] = None) -> None:
        """
        Download a file from the controller's file service into `file`.

        The response body is streamed into the file, which is closed on return.
        A 204 response leaves the file empty.
        """
        verb = "GET"
        uri = uri.lstrip("/")
        url = self._url(FILESERVICE_URI + uri)

        def build_request() -> httpx.Request:
            headers = self._build_headers(tenant)
            headers["Accept"] = JSON_CONTENT_TYPE
            return self._new_request(verb, url, headers=headers)

        try:
            response = self._send_with_recovery(verb, uri, url, build_request, stream=True)
            try:
                if response.status_code == 204:
                    return
                if not 200 <= response.status_code <= 299:
                    response.read()
                    raise self._error_from_response(verb, url, response)
                try:
                    for chunk in response.iter_bytes():
                        file.write(chunk)
                except httpx.HTTPError as exc:
                    raise AviConnectionError(verb, url, original_exception=exc) from exc
            finally:
                response.close()
        finally:
            file.close()

    def close(self) -> None:
        """Close the HTTP client if this session created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def _part_filename(file: BinaryIO) -> str:
    """Basename of a file handle's path, or "file" for handles opened from a descriptor."""
    name = getattr(file, "name", None)
    if isinstance(name, (str, bytes, os.PathLike)) and name:
        return os.fsdecode(os.path.basename(name))
    return "file"


def new_session(
    host: str,
    username: str,
    client: Optional[httpx.Client] = None,
    retry_policy: Optional[RetryPolicy] = None,
    readiness_probe: Optional[ReadinessProbe] = None,
    **options,
) -> AviSession:
    """
    Create a session and log in to the controller.

    Args:
        host: Controller hostname or IP address
        username: User to log in as
        client: Pre-configured HTTP client
        retry_policy: Retry schedule override
        readiness_probe: Readiness probe override
        **options: Remaining SessionConfig fields (password, version,
            auth_token, refresh_auth_token, tenant, insecure, transport,
            timeout)

    Returns:
        AviSession: A logged-in session
    """
    config = SessionConfig(host=host, username=username, **options)
    session = AviSession(config, client=client, retry_policy=retry_policy, readiness_probe=readiness_probe)
    session.initiate_session()
    return session

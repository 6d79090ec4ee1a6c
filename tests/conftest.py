"""Shared fixtures: a scripted Avi Controller behind httpx.MockTransport."""

from collections import defaultdict, deque
from typing import Callable, Dict, List, Tuple, Union

import httpx
import pytest

from avi_session import ReadinessProbe, RetryPolicy, new_session

HOST = "controller.test"
PREFIX = f"https://{HOST}/"

Reply = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


def reply(
    status_code: int = 200,
    json=None,
    cookies: Dict[str, str] = None,
    headers: Dict[str, str] = None,
    **kwargs,
) -> httpx.Response:
    """Build a canned controller response, optionally setting cookies."""
    header_list = list((headers or {}).items())
    header_list += [("set-cookie", f"{name}={value}; Path=/") for name, value in (cookies or {}).items()]
    headers = header_list
    if json is not None:
        kwargs["json"] = json
    return httpx.Response(status_code, headers=headers, **kwargs)


class FakeController:
    """Answers requests from per-route queues of scripted replies.

    Queued replies are consumed in order; the last one is repeated once the
    queue is down to a single entry. Every request is recorded.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], deque] = defaultdict(deque)
        self.logins = 0
        self.route("GET", "/", reply(200, cookies={"csrftoken": "csrf-0"}))
        self.route("POST", "/login", self._login)
        self.route("GET", "/api/cluster/status", reply(200, json={"cluster_state": {"state": "CLUSTER_UP_HA_ACTIVE"}}))

    def _login(self, request: httpx.Request) -> httpx.Response:
        self.logins += 1
        return reply(
            200,
            json={"user": {"username": "admin"}},
            cookies={"csrftoken": f"csrf-{self.logins}", "sessionid": f"sess-{self.logins}"},
        )

    def route(self, method: str, path: str, *replies: Reply) -> None:
        """Replace the replies for a route."""
        self.routes[(method, path)] = deque(replies)

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return reply(404, json={"error": f"no route for {request.method} {request.url.path}"})
        answer = queue.popleft() if len(queue) > 1 else queue[0]
        if callable(answer):
            return answer(request)
        # fresh copy, a response object is bound to the request it answers
        return httpx.Response(answer.status_code, headers=answer.headers, content=answer.content)

    def requests_to(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def controller():
    return FakeController()


@pytest.fixture
def sleeps():
    """Records every backoff sleep instead of sleeping."""
    return []


@pytest.fixture
def client(controller):
    with httpx.Client(transport=httpx.MockTransport(controller.handler)) as http_client:
        yield http_client


@pytest.fixture
def make_session(client, sleeps):
    def factory(**options):
        options.setdefault("password", "secret")
        return new_session(
            HOST,
            "admin",
            client=client,
            retry_policy=RetryPolicy(sleep=sleeps.append),
            readiness_probe=ReadinessProbe(sleep=sleeps.append),
            **options,
        )
    return factory


@pytest.fixture
def session(make_session, controller, sleeps):
    """A logged-in session with the login traffic cleared from the record."""
    avi = make_session()
    controller.requests.clear()
    sleeps.clear()
    return avi

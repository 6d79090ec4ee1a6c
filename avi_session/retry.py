"""Retry schedule, response classification and controller readiness probing."""

import enum
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import httpx

from .exceptions import AviRetryExhaustedError, ControllerUnavailableError

logger = logging.getLogger(__name__)

LOGIN_URI = "login"
CLUSTER_STATUS_URI = "api/cluster/status"
CONTROLLER_DOWN_STATUS_CODES = frozenset({500, 502, 503})


class Outcome(enum.Enum):
    """What to do with a response received from the controller."""

    SUCCESS = "success"
    FAIL = "fail"
    REAUTHENTICATE = "reauthenticate"
    RETRY = "retry"
    PROBE_AND_RETRY = "probe_and_retry"


@dataclass
class RetryPolicy:
    """Bounded retry schedule shared by the JSON, upload and download paths."""

    # Pause before dispatch number N (N = retry counter); no dispatch past the end.
    delays: Tuple[float, ...] = (0.0, 0.1, 0.5, 1.0)

    sleep: Callable[[float], None] = time.sleep

    # Callback for monitoring: (retry, status_code, url)
    on_retry: Optional[Callable[[int, int, str], None]] = None

    @property
    def max_retries(self) -> int:
        return len(self.delays) - 1

    def pause(self, retry: int, verb: str, url: str) -> None:
        """Sleep before dispatch `retry`, or abort once the schedule is used up."""
        if retry >= len(self.delays):
            logger.error("Aborting %s %s after %d retries", verb, url, self.max_retries)
            raise AviRetryExhaustedError(verb, url, retry_count=retry)
        delay = self.delays[retry]
        if delay > 0:
            self.sleep(delay)

    def classify(self, status_code: int, uri: str, has_session: bool) -> Outcome:
        """Map a response status to the recovery action to take."""
        if 200 <= status_code <= 299:
            return Outcome.SUCCESS
        # A 401 on login itself must surface, otherwise re-login would recurse.
        if status_code == 401 and has_session and uri != LOGIN_URI:
            return Outcome.REAUTHENTICATE
        if status_code == 419:
            return Outcome.RETRY
        if 500 <= status_code <= 599:
            return Outcome.PROBE_AND_RETRY
        return Outcome.FAIL

    def notify(self, retry: int, status_code: int, url: str) -> None:
        logger.info("Retrying %d due to Status Code %d for %s", retry, status_code, url)
        if self.on_retry:
            self.on_retry(retry, status_code, url)


@dataclass
class ReadinessProbe:
    """Polls the cluster status endpoint until the controller stops returning 5xx."""

    rounds: int = 10
    backoff_base: float = 3.0
    sleep: Callable[[float], None] = time.sleep
    attempts: int = field(default=0, init=False)

    def delay(self, round_number: int) -> int:
        """Whole seconds to wait after a failed round: 3, 8, 22, 60, ..."""
        return int(math.exp(round_number) * self.backoff_base)

    def wait_until_ready(self, client: httpx.Client, url: str) -> None:
        """
        Block until the controller answers the status endpoint with a non-5xx code.

        The probe goes straight to the transport with no session headers, so a
        down controller never recurses into the recovery path.

        Raises:
            ControllerUnavailableError: If every round fails
        """
        for round_number in range(self.rounds):
            self.attempts += 1
            try:
                request = httpx.Request("GET", url, extensions={"timeout": client.timeout.as_dict()})
                response = client.send(request)
                response.close()
            except httpx.HTTPError as exc:
                logger.warning("Controller status check on %s failed: %s", url, exc)
            else:
                if response.status_code not in CONTROLLER_DOWN_STATUS_CODES:
                    logger.debug("Controller %s is up (%d)", url, response.status_code)
                    return
                logger.info("Controller status check on %s returned %d", url, response.status_code)

            if round_number < self.rounds - 1:
                wait = self.delay(round_number)
                logger.warning("Controller %s not ready, retrying in %ds (round %d)", url, wait, round_number)
                self.sleep(wait)

        raise ControllerUnavailableError("GET", url, rounds=self.rounds)

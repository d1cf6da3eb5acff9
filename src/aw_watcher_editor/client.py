"""Delivery of heartbeats to an ActivityWatch-compatible aggregation server."""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple

import httpx

from .errors import DeliveryRejected, DeliveryUnreachable
from .models import Heartbeat

if TYPE_CHECKING:
    from .config import WatcherConfig

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://localhost:5666/api/0"
DEFAULT_CLIENT_NAME = "aw-watcher-editor"
DEFAULT_EVENT_TYPE = "app.editor.activity"

# Registration answers 304 when the bucket already exists; some servers use 409
BUCKET_EXISTS_STATUSES: Tuple[int, ...] = (304, 409)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    factor: float = 2.0
    max_delay: float = 5.0

    def total_budget(self) -> float:
        """Upper bound on the time spent sleeping between attempts of one request."""
        backoff = Backoff(self)
        total = 0.0
        while True:
            delay = backoff.record_failure()
            if delay is None:
                return total
            total += delay


class Backoff:
    """Retry state for a single request: attempts made so far and the next delay."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy
        self.attempt = 0
        self.next_delay = policy.base_delay

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.policy.max_attempts

    def record_failure(self) -> Optional[float]:
        """Count a failed attempt; return the delay before the next one, or None when out of attempts."""
        self.attempt += 1
        if self.exhausted:
            return None
        delay = min(self.next_delay, self.policy.max_delay)
        self.next_delay = self.next_delay * self.policy.factor
        return delay


class DeliveryClient:
    """Sends heartbeats to one bucket, registering the bucket lazily.

    Transient failures (connection errors, timeouts, 5xx) are retried with
    exponential backoff; other 4xx answers are final. Meant to be driven from a
    single background thread.

    Attributes:
        bucket_id: Bucket the heartbeats are recorded in.
        pulsetime: Merge window (seconds) the server applies to adjacent heartbeats.
    """

    def __init__(
        self,
        bucket_id: str,
        server_url: str = DEFAULT_SERVER_URL,
        client_name: str = DEFAULT_CLIENT_NAME,
        event_type: str = DEFAULT_EVENT_TYPE,
        hostname: Optional[str] = None,
        pulsetime: float = 30.0,
        timeout: float = 5.0,
        retry: Optional[RetryPolicy] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            bucket_id: Bucket to register and send heartbeats to.
            server_url: API root of the aggregation server.
            client_name: Client identifier stored with the bucket.
            event_type: Bucket event type.
            hostname: Hostname stored with the bucket (defaults to this machine).
            pulsetime: Heartbeat merge window passed to the server.
            timeout: Per-request timeout in seconds.
            retry: Retry policy for transient failures.
            transport: Optional httpx transport (tests use httpx.MockTransport).
            sleep: Function used to wait between attempts.
        """
        self.bucket_id = bucket_id
        self.server_url = server_url.rstrip("/")
        self.client_name = client_name
        self.event_type = event_type
        self.hostname = hostname or socket.gethostname() or "unknown"
        self.pulsetime = pulsetime
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._client = httpx.Client(base_url=self.server_url, timeout=timeout, transport=transport)
        self._registered = False

    @classmethod
    def from_config(
        cls,
        config: "WatcherConfig",
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "DeliveryClient":
        return cls(
            bucket_id=config.bucket_id,
            server_url=config.server_url,
            client_name=config.client_name,
            event_type=config.event_type,
            hostname=config.hostname,
            pulsetime=config.pulsetime,
            timeout=config.request_timeout,
            retry=RetryPolicy(
                max_attempts=config.max_attempts,
                base_delay=config.backoff_base,
                factor=config.backoff_factor,
                max_delay=config.backoff_max,
            ),
            transport=transport,
            sleep=sleep,
        )

    @property
    def registered(self) -> bool:
        return self._registered

    def register_bucket(self) -> None:
        """Create the bucket on the server; an already existing bucket is fine."""
        payload = {
            "client": self.client_name,
            "type": self.event_type,
            "hostname": self.hostname,
        }
        response = self._request(
            "POST",
            f"/buckets/{self.bucket_id}",
            json=payload,
            ok_statuses=BUCKET_EXISTS_STATUSES,
        )
        logger.debug("Bucket %s registered (status %d)", self.bucket_id, response.status_code)
        self._registered = True

    def send(self, heartbeat: Heartbeat) -> None:
        """Deliver one heartbeat.

        Raises:
            DeliveryUnreachable: Transient failures outlasted the retry policy.
            DeliveryRejected: The server refused the bucket or the heartbeat.
        """
        if not self._registered:
            self.register_bucket()
        try:
            self._post_heartbeat(heartbeat)
        except DeliveryRejected as e:
            if e.status_code != 404:
                raise
            # Bucket vanished (server restart or registration race): register and resend once
            logger.info("Bucket %s not found on server, registering again", self.bucket_id)
            self._registered = False
            self.register_bucket()
            self._post_heartbeat(heartbeat)

    def close(self) -> None:
        self._client.close()

    # Internal helpers

    def _post_heartbeat(self, heartbeat: Heartbeat) -> None:
        self._request(
            "POST",
            f"/buckets/{self.bucket_id}/heartbeat",
            json=heartbeat.to_event(),
            params={"pulsetime": self.pulsetime},
        )
        logger.debug("Heartbeat sent to %s at %s", self.bucket_id, heartbeat.iso_timestamp)

    def _request(
        self,
        method: str,
        url: str,
        *,
        json: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
        ok_statuses: Tuple[int, ...] = (),
    ) -> httpx.Response:
        backoff = Backoff(self.retry)
        while True:
            status: Optional[int] = None
            try:
                response = self._client.request(method, url, json=json, params=params)
            except httpx.TransportError as e:
                reason = f"{type(e).__name__}: {e}"
            else:
                status = response.status_code
                if status < 300 or status in ok_statuses:
                    return response
                if status < 500:
                    raise DeliveryRejected(
                        f"{method} {url} rejected with status {status}: {response.text[:200]}",
                        self.bucket_id,
                        status_code=status,
                    )
                reason = f"server returned status {status}"

            delay = backoff.record_failure()
            if delay is None:
                raise DeliveryUnreachable(
                    f"{method} {url} failed after {backoff.attempt} attempts: {reason}",
                    self.bucket_id,
                    status_code=status,
                )
            logger.info(
                "%s %s failed (%s), retrying in %.2fs (attempt %d/%d)",
                method,
                url,
                reason,
                delay,
                backoff.attempt + 1,
                self.retry.max_attempts,
            )
            self._sleep(delay)


__all__ = [
    "Backoff",
    "DeliveryClient",
    "RetryPolicy",
    "DEFAULT_SERVER_URL",
    "DEFAULT_CLIENT_NAME",
    "DEFAULT_EVENT_TYPE",
]

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_incrementing

from ppmchat import config
from ppmchat.errors import RemoteCallError
from ppmchat.providers.base import ObjectApi

logger = logging.getLogger(__name__)


def _should_retry(exc: BaseException) -> bool:
    return isinstance(exc, RemoteCallError) and not exc.is_auth


class ClarityRestClient(ObjectApi):
    """
    Clarity PPM REST API (/ppm/rest/v1).
    Auth precedence: bearer token, then JSESSIONID cookie, then basic credentials.
    """

    def __init__(
        self,
        base_url: str,
        auth_token: Optional[str] = None,
        session_id: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        timeout: float = 30,
        max_retries: int = 3,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._sleep = sleep

        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        if auth_token:
            self.session.headers["Authorization"] = f"Bearer {auth_token}"
        elif session_id:
            self.session.headers["Cookie"] = f"JSESSIONID={session_id}"
        elif username and password:
            self.session.auth = (username, password)

    def get(self, endpoint: str) -> Dict[str, Any]:
        return self._request("GET", endpoint)

    def post(self, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("POST", endpoint, body or {})

    def patch(self, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request("PATCH", endpoint, body or {})

    def delete(self, endpoint: str) -> Dict[str, Any]:
        return self._request("DELETE", endpoint)

    def _url(self, endpoint: str) -> str:
        path = endpoint if endpoint.startswith("/") else "/" + endpoint
        return f"{self.base_url}{path}"

    def _request(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_incrementing(start=1, increment=1),
            retry=retry_if_exception(_should_retry),
            sleep=self._sleep,
            before_sleep=lambda rs: logger.warning(
                "%s %s failed (attempt %d): %s",
                method, endpoint, rs.attempt_number, rs.outcome.exception(),
            ),
            reraise=True,
        )
        return retrying(self._send, method, endpoint, body)

    def _send(self, method: str, endpoint: str, body: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        try:
            r = self.session.request(method, self._url(endpoint), json=body, timeout=self.timeout)
        except requests.Timeout as e:
            raise RemoteCallError(f"Request timeout: {e}", method=method, endpoint=endpoint, timed_out=True) from e
        except requests.ConnectionError as e:
            raise RemoteCallError(f"Connection failed: {e}", method=method, endpoint=endpoint, timed_out=True) from e

        if r.status_code >= 400:
            raise RemoteCallError(
                f"HTTP {r.status_code}: {r.text[:300]}",
                status=r.status_code,
                method=method,
                endpoint=endpoint,
            )
        if not r.content:
            return {}
        try:
            return r.json()
        except ValueError as e:
            raise RemoteCallError(
                f"Invalid JSON from {endpoint}", status=r.status_code, method=method, endpoint=endpoint
            ) from e


def create_clarity_client(**overrides) -> ClarityRestClient:
    params = dict(
        base_url=config.CLARITY_BASE_URL,
        auth_token=config.CLARITY_AUTH_TOKEN,
        session_id=config.CLARITY_SESSION_ID,
        username=config.CLARITY_USERNAME,
        password=config.CLARITY_PASSWORD,
        timeout=config.CLARITY_TIMEOUT,
        max_retries=config.CLARITY_MAX_RETRIES,
    )
    params.update(overrides)
    return ClarityRestClient(**params)

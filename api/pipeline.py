"""
Resilient request pipeline.

Every outbound call goes through RequestPipeline.execute(), which attaches the
bearer credential, unwraps the {success, message, data} envelope and renews an
expired access token at most once per authorization failure, no matter how
many concurrent callers hit that failure.
"""
import asyncio
from typing import Any, Dict, Optional
import logging

import requests
from pydantic import ValidationError as PayloadError

from bidding.models import Session, TokenPair
from bidding.session_store import SessionStore
from .coalescer import RequestCoalescer
from .errors import ApiError, NetworkError, SessionExpired

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds

# Calls that establish a session; a 401 from them is a plain rejection.
AUTH_PATHS = ("/auth/login", "/auth/register", "/auth/refresh")

_REFRESH_KEY = "refresh"


class RequestPipeline:
    """Sends requests to the marketplace API on behalf of the current session."""

    def __init__(self, base_url: str, session_store: SessionStore, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session_store = session_store
        self.timeout = timeout
        self._coalescer = RequestCoalescer()

    def _get_headers(self, access_token: Optional[str], multipart: bool) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        # requests sets the multipart boundary itself; a JSON content type would break it
        if not multipart:
            headers["Content-Type"] = "application/json"
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> requests.Response:
        multipart = files is not None
        kwargs: Dict[str, Any] = {
            "headers": self._get_headers(access_token, multipart),
            "timeout": self.timeout,
        }
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if multipart:
            kwargs["files"] = files
            if body:
                kwargs["data"] = body
        elif body is not None:
            kwargs["json"] = body

        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        try:
            # requests blocks; run it off the event loop so other callers keep going
            return await asyncio.to_thread(requests.request, method, url, **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error(f"{method} {path} failed without a response: {e}")
            raise NetworkError(f"Could not reach server: {e}") from e

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform one API call.

        Returns:
            The envelope's data field, or None for 204

        Raises:
            NetworkError: No response was received
            ApiError: Non-2xx status, including a 401 on the single retry
            SessionExpired: The access token was rejected and could not be renewed
        """
        session = self.session_store.read()
        sent_token = session.access_token if session else None

        response = await self._send(method, path, body, params, files, sent_token)

        if response.status_code == 401 and sent_token and path not in AUTH_PATHS:
            logger.warning(f"Received 401 for {method} {path}, renewing session...")
            fresh_token = await self._renew_session(sent_token)
            response = await self._send(method, path, body, params, files, fresh_token)

        return self._unwrap(response)

    async def _renew_session(self, rejected_token: str) -> str:
        """Return an access token to retry with, refreshing only if nobody else already has."""
        session = self.session_store.read()
        if session is None:
            # A concurrent refresh for this episode failed and cleared the store
            raise SessionExpired()
        if session.access_token != rejected_token:
            logger.debug("Access token already renewed by a concurrent caller")
            return session.access_token
        if not session.refresh_token:
            logger.error("Access token rejected and no refresh token held")
            self.session_store.clear()
            raise SessionExpired()

        renewed = await self._coalescer.get_or_execute(_REFRESH_KEY, self._refresh)
        return renewed.access_token

    async def _refresh(self) -> Session:
        """
        Exchange the refresh token for a new pair.

        Commits both tokens in one swap, or clears the store on any failure. A
        session that replaced the one being refreshed (a new login) is kept as is.
        """
        session = self.session_store.read()
        if session is None:
            raise SessionExpired()

        logger.info("Refreshing access token...")
        try:
            response = await self._send("POST", "/auth/refresh", {"refreshToken": session.refresh_token})
            tokens = TokenPair.model_validate(self._unwrap(response))
            renewed = self.session_store.replace_tokens(tokens, expected_refresh=session.refresh_token)
        except (NetworkError, ApiError, PayloadError, LookupError) as e:
            current = self.session_store.read()
            if current is not None and current.refresh_token != session.refresh_token:
                logger.warning(f"Refresh failed but a newer session is in place, keeping it: {e}")
                return current
            logger.error(f"Failed to refresh access token: {e}")
            self.session_store.clear()
            raise SessionExpired() from e

        logger.info("Successfully refreshed access token")
        return renewed

    def _unwrap(self, response: requests.Response) -> Any:
        status = response.status_code
        if status == 204:
            return None

        if 200 <= status < 300:
            try:
                envelope = response.json()
            except ValueError:
                raise ApiError(status, "Malformed response from server")
            if not isinstance(envelope, dict):
                raise ApiError(status, "Malformed response from server")
            return envelope.get("data")

        message = None
        try:
            envelope = response.json()
            if isinstance(envelope, dict):
                message = envelope.get("message")
        except ValueError:
            pass
        raise ApiError(status, message or f"API Error: {status}")

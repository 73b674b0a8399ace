"""
Process-wide holder of the current token pair and cached user identity.

The store performs no I/O and knows nothing about the network. Expiry is never
checked here; it is discovered when an authorized call comes back with 401.
"""
import threading
from typing import Optional
import logging

from .models import Session, TokenPair, Identity

logger = logging.getLogger(__name__)


class SessionStore:
    """Holds zero or one Session. Every mutation swaps the whole Session object."""

    def __init__(self, session: Optional[Session] = None):
        self._session: Optional[Session] = session
        self._lock = threading.Lock()  # The store may be shared with code outside the event loop

    def store(self, tokens: TokenPair, identity: Identity) -> Session:
        """Atomically replace the held Session."""
        session = Session(tokens=tokens, identity=identity)
        with self._lock:
            self._session = session
        logger.debug(f"Session stored for {identity.email}")
        return session

    def read(self) -> Optional[Session]:
        with self._lock:
            return self._session

    def clear(self):
        with self._lock:
            self._session = None
        logger.debug("Session cleared")

    def is_authenticated(self) -> bool:
        """Optimistic: true while an access token is held, whether or not the server still accepts it."""
        session = self.read()
        return session is not None and bool(session.access_token)

    def replace_tokens(self, tokens: TokenPair, expected_refresh: Optional[str] = None) -> Session:
        """
        Commit a refreshed token pair, keeping the cached identity.

        Both tokens change in a single swap; readers see either the old pair or
        the new pair, never one of each.

        Args:
            tokens: The pair issued by the refresh call
            expected_refresh: Refresh token that was exchanged. If the held session no
                longer carries it (someone logged in meanwhile), nothing is committed
                and the held session is returned as is.

        Raises:
            LookupError: If the session was cleared while the refresh was in flight
        """
        with self._lock:
            if self._session is None:
                raise LookupError("No session to refresh")
            if expected_refresh is not None and self._session.refresh_token != expected_refresh:
                logger.info("Session replaced during refresh, discarding refreshed tokens")
                return self._session
            self._session = Session(tokens=tokens, identity=self._session.identity)
            return self._session

    def update_identity(self, identity: Identity) -> Optional[Session]:
        with self._lock:
            if self._session is None:
                return None
            self._session = Session(tokens=self._session.tokens, identity=identity)
            return self._session

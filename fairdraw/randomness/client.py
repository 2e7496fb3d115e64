import os
import logging
from typing import Mapping, Optional
from urllib.parse import quote

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# Public CORS relays tried in order after the direct URL fails.
FALLBACK_RELAYS = (
    "https://api.allorigins.win/raw?url={encoded}",
    "https://corsproxy.io/?{encoded}",
    "https://api.codetabs.com/v1/proxy?quest={encoded}",
    "https://r.jina.ai/http://{bare}",
)


def open_session() -> requests.Session:
    """Return a requests session with the headers every provider accepts."""
    session = requests.Session()
    session.headers.update({"Accept": "application/json, text/plain, */*"})
    return session


class RandomnessClient:
    """HTTP transport for public randomness providers.

    The client only knows how to turn a provider URL into response text.
    Parsing and consensus live in :mod:`fairdraw.randomness.providers` and
    :mod:`fairdraw.randomness.consensus`.
    """

    def __init__(
        self,
        proxy_base: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        self.proxy_base = (proxy_base or os.getenv("RANDOMNESS_PROXY_BASE") or "").strip() or None
        env_timeout = os.getenv("RANDOMNESS_TIMEOUT")
        try:
            self.timeout = float(timeout if timeout is not None else env_timeout or DEFAULT_TIMEOUT)
        except ValueError as e:
            raise ValueError(f"Invalid RANDOMNESS_TIMEOUT value: {env_timeout!r}") from e
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        self.session = session or open_session()

    @property
    def headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json, text/plain, */*"}

    def request_candidates(self, target_url: str) -> list[str]:
        """Return the URLs to try for ``target_url``, in order.

        With a configured proxy base only the proxied URL is tried. Otherwise
        the direct URL comes first, followed by the public relays.
        """
        encoded = quote(target_url, safe="")
        if self.proxy_base:
            return [f"{self.proxy_base}?url={encoded}"]
        bare = target_url.split("://", 1)[-1]
        return [target_url] + [
            relay.format(encoded=encoded, bare=bare) for relay in FALLBACK_RELAYS
        ]

    def fetch_text(self, url: str) -> str:
        """GET ``url`` and return the body text.

        Raises
        ------
        RuntimeError
            If the request fails or the response status is not successful.
        """
        try:
            r = self.session.get(url, headers=self.headers, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            # Do not log response bodies; they are hashed into the audit log instead.
            logger.debug(f"Randomness request failed for {url}: {e}")
            raise RuntimeError(f"Request to {url} failed: {e}") from e
        return r.text

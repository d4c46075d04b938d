"""
TeamGantt REST client.

Thin urllib wrapper around the v1 API. Every call is bearer-token
authenticated; any non-2xx or transport failure raises UpstreamError so
callers decide whether it is fatal.
"""

import json
import logging
import urllib.error
import urllib.parse
import urllib.request

from errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.teamgantt.com/v1"


class TeamGanttClient:
    def __init__(self, token: str, base_url: str = DEFAULT_BASE_URL, timeout: int = 30):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def build_url(self, path: str, params: dict = None) -> str:
        """Join base URL, path and non-empty query params."""
        url = f"{self.base_url}{path}"
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        if query:
            url += "?" + urllib.parse.urlencode(query)
        return url

    def request(self, path: str, params: dict = None):
        """GET a TeamGantt endpoint and return the decoded JSON body."""
        url = self.build_url(path, params)
        req = urllib.request.Request(url, headers={
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        })

        logger.debug(f"TeamGantt API request: {path} {params or ''}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                return json.loads(response.read().decode())
        except urllib.error.HTTPError as e:
            logger.error(f"TeamGantt API HTTP error: {e.code} - {e.reason} for {path}")
            try:
                logger.error(f"Error response: {e.read().decode()[:500]}")
            except OSError:
                pass
            raise UpstreamError(f"API {e.code}: {e.reason} - {path}", status=e.code, path=path) from e
        except urllib.error.URLError as e:
            logger.error(f"TeamGantt API URL error: {e.reason} for {path}")
            raise UpstreamError(f"API unreachable: {e.reason} - {path}", path=path) from e
        except (OSError, ValueError) as e:
            # timeouts surface as OSError, bad bodies as JSONDecodeError
            logger.error(f"TeamGantt API unexpected error: {e} for {path}")
            raise UpstreamError(f"API error: {e} - {path}", path=path) from e

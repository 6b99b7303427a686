"""
SLICEPOOL Remote Subsidy Source
Reads the issuance schedule and submits claims through a node's HTTP API.
"""

from typing import Any, Dict
import logging

import requests

import config
from .errors import SubsidySourceError
from .subsidy import SubsidySource

logger = logging.getLogger(__name__)


class RemoteSubsidySource(SubsidySource):
    """
    Subsidy source backed by a remote node.

    Endpoints:
        GET  /status                        -> {"height": int}
        GET  /subsidy/<height>              -> {"subsidy": int}
        GET  /subsidy?start=<a>&end=<b>     -> {"total": int}
        POST /claim {"to": str, "amount": int} -> {"success": bool}
    """

    def __init__(self, seed_url: str = None, timeout: int = None):
        self.seed_url = (seed_url or config.SEED_URL).rstrip('/')
        self.timeout = config.REQUEST_TIMEOUT if timeout is None else timeout

    def _request(self, path: str, params: Dict[str, Any] = None, data: Dict[str, Any] = None) -> Dict[str, Any]:
        """Make HTTP request to the node."""
        url = f"{self.seed_url}{path}"

        try:
            if data is not None:
                resp = requests.post(url, json=data, timeout=self.timeout)
            else:
                resp = requests.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Subsidy source unreachable: {e}")
            raise SubsidySourceError(f"Connection error: {e}")

        if resp.status_code != 200:
            logger.warning(f"Subsidy source error: HTTP {resp.status_code} on {path}")
            raise SubsidySourceError(f"HTTP error: {resp.status_code}")

        try:
            result = resp.json()
        except ValueError as e:
            raise SubsidySourceError(f"Invalid JSON response: {e}")
        if not isinstance(result, dict):
            raise SubsidySourceError(f"Unexpected response from {path}: {result!r}")
        return result

    def _int_field(self, result: Dict[str, Any], key: str) -> int:
        if key not in result:
            error = result.get('error', f"missing '{key}'")
            raise SubsidySourceError(f"Bad response: {error}")
        return int(result[key])

    def current_height(self) -> int:
        return self._int_field(self._request('/status'), 'height')

    def subsidy_at(self, height: int) -> int:
        return self._int_field(self._request(f'/subsidy/{height}'), 'subsidy')

    def cumulative_subsidy(self, start: int, end: int) -> int:
        if end < start:
            return 0
        result = self._request('/subsidy', params={'start': start, 'end': end})
        return self._int_field(result, 'total')

    def claim(self, to: str, amount: int):
        if amount <= 0:
            return
        result = self._request('/claim', data={'to': to, 'amount': amount})
        if not result.get('success'):
            raise SubsidySourceError(f"Claim rejected: {result.get('error', 'Unknown error')}")
        logger.info(f"Claimed {amount} for {to}")


class RemoteChain:
    """Chain clock that reads the height from a remote node."""

    def __init__(self, source: RemoteSubsidySource):
        self.source = source

    @property
    def height(self) -> int:
        return self.source.current_height()

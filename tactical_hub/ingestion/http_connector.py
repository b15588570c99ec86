"""
HTTP JSON polling connector.

Polls one endpoint with ``httpx`` and normalises the response. Three payload
shapes are accepted::

    [{"metric": "revenue", "value": 1200.0, "timestamp": "..."}]   # record list
    {"data_points": [...]}  or  {"records": [...]}                  # wrapped list
    {"cpu_usage": 41.5, "memory_usage": 63.0}                       # flat metrics

Credentials (.env, gitignored) are referenced by env var name in the source
config (``api_key_env``) and sent as a bearer token.

Transport failures, non-2xx responses and undecodable bodies all surface as
``SourceUnavailableError``.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Iterable, Optional

from tactical_hub.config import SourceConfig
from tactical_hub.errors import SourceUnavailableError
from tactical_hub.ingestion.base import PollingConnector
from tactical_hub.models.datapoint import DataPoint
from tactical_hub.taxonomy.metric_taxonomy import MetricCategory, SourceKind
from tactical_hub.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

_LIST_KEYS = ("data_points", "records", "data", "metrics")


class HttpJsonConnector(PollingConnector):
    """Polls a JSON endpoint and emits its metrics as data points.

    Usage::

        connector = HttpJsonConnector(
            name="billing-api",
            source=SourceKind.BUSINESS_ANALYTICS,
            default_category=MetricCategory.BUSINESS,
            url="https://metrics.example.com/api/business",
            module_access=["business"],
        )
        points = connector.pull()

    Args:
        url: Endpoint returning one of the accepted payload shapes.
        api_key: Optional bearer token.
        timeout_seconds: Per-request timeout.
        transport: Optional ``httpx`` transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        name: str,
        source: SourceKind,
        default_category: MetricCategory,
        url: str,
        module_access: Iterable[str] = (),
        api_key: Optional[str] = None,
        timeout_seconds: float = 10.0,
        poll_interval_ms: Optional[int] = None,
        transport: Any = None,
    ) -> None:
        super().__init__(
            name, source, default_category, module_access, poll_interval_ms=poll_interval_ms
        )
        self.url = url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client = None

    @classmethod
    def from_config(cls, config: SourceConfig) -> "HttpJsonConnector":
        api_key = os.environ.get(config.api_key_env) if config.api_key_env else None
        if config.api_key_env and not api_key:
            logger.warning("%s: env var %s is not set; polling without auth",
                           config.name, config.api_key_env)
        return cls(
            name=config.name,
            source=config.source,
            default_category=config.default_category,
            url=config.url,
            module_access=config.module_access,
            api_key=api_key,
            timeout_seconds=config.timeout_seconds,
            poll_interval_ms=config.poll_interval_ms,
        )

    def _http(self):
        import httpx

        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.Client(
                headers=headers,
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def pull(self) -> list[DataPoint]:
        import httpx

        received_at = utcnow()
        try:
            resp = self._http().get(self.url)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as exc:
            raise SourceUnavailableError(self.name, str(exc)) from exc
        except ValueError as exc:
            raise SourceUnavailableError(self.name, f"invalid JSON body: {exc}") from exc

        return self.normalize_records(self._extract_records(payload), received_at)

    def _extract_records(self, payload: Any) -> list[dict[str, Any]]:
        if isinstance(payload, list):
            return payload
        if not isinstance(payload, dict):
            raise SourceUnavailableError(
                self.name, f"unexpected payload type {type(payload).__name__}"
            )
        for key in _LIST_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
        timestamp = payload.get("timestamp")
        return [
            {"metric": key, "value": value, "timestamp": timestamp}
            for key, value in payload.items()
            if key != "timestamp"
            and isinstance(value, (int, float)) and not isinstance(value, bool)
        ]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

from __future__ import annotations

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from ..exceptions import FetchError
from ..schemas.probe import DiskUsageResponse

logger = structlog.get_logger(__name__)

PROBE_PORT = 1251
PROBE_PATH = "/disk"

_responses_adapter = TypeAdapter(list[DiskUsageResponse])


class ProbeClient:
    """Queries the disk usage sidecar of a pod."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        port: int = PROBE_PORT,
        timeout: float = 10.0,
    ) -> None:
        self._http = http_client
        self._owns_http = http_client is None
        self.port = port
        self.timeout = timeout

    async def disk_usage(self, host: str) -> list[DiskUsageResponse]:
        """Return usable disk statistics for every PVC the probe at ``host`` reports.

        ``host`` is a URL without a port, e.g. "http://10.0.0.1". Entries with an error
        or zero total bytes are dropped.

        Raises:
            FetchError: bad address, network failure, malformed body, or no usable entries.
        """
        url = self._probe_url(host)
        try:
            resp = await self._client().get(url)
        except httpx.HTTPError as exc:
            raise FetchError(f"http do: {exc!r}") from exc

        try:
            responses = _responses_adapter.validate_json(resp.content)
        except ValidationError as exc:
            raise FetchError(f"malformed json: {exc.error_count()} validation error(s)") from exc

        usable = [item for item in responses if item.usable]
        if not usable:
            raise FetchError("no disk usage data")
        if len(usable) != len(responses):
            logger.debug("probe.partial_response", url=url, total=len(responses), usable=len(usable))
        return usable

    def _probe_url(self, host: str) -> str:
        try:
            parsed = httpx.URL(host)
            if not parsed.host:
                raise ValueError(f"missing host in {host!r}")
            return str(parsed.copy_with(port=self.port, path=PROBE_PATH))
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise FetchError(f"url parse: {exc}") from exc

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

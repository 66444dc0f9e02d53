import logging
from typing import Optional

import httpx

from bluegreen.config import Settings, settings as default_settings
from bluegreen.errors import ProbeError
from bluegreen.models import Pool, PoolHealth, RoutingObservation

logger = logging.getLogger(__name__)


class ProbeClient:
    """HTTP calls against the proxy and against each pool addressed directly.

    Every request carries an explicit timeout. Transport failures surface as
    ``ProbeError``; what a failure means is up to the caller.
    """

    def __init__(
        self,
        settings: Settings = default_settings,
        client: Optional[httpx.Client] = None,
    ):
        self.settings = settings
        self._client = client or httpx.Client(timeout=settings.probe_timeout)

    def close(self):
        self._client.close()

    def url(self, port: int, path: str) -> str:
        return f"http://{self.settings.host}:{port}{path}"

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(
                method, url, timeout=self.settings.probe_timeout, **kwargs
            )
        except httpx.TimeoutException as exc:
            raise ProbeError(url, "timed out") from exc
        except httpx.HTTPError as exc:
            raise ProbeError(url, str(exc) or type(exc).__name__) from exc

    def start_chaos(self, port: int, mode: Optional[str] = None) -> httpx.Response:
        mode = mode or self.settings.chaos_mode
        return self._request("POST", self.url(port, "/chaos/start"), params={"mode": mode})

    def stop_chaos(self, port: int) -> httpx.Response:
        return self._request("POST", self.url(port, "/chaos/stop"))

    def observe(self, port: int) -> RoutingObservation:
        """Fetch the probe path and report which pool answered."""
        resp = self._request("GET", self.url(port, self.settings.probe_path))
        return RoutingObservation(
            status_code=resp.status_code,
            pool=resp.headers.get(self.settings.pool_header),
            release=resp.headers.get(self.settings.release_header),
        )

    def check_pool(self, pool: Pool, port: int) -> PoolHealth:
        try:
            observation = self.observe(port)
        except ProbeError as exc:
            return PoolHealth(pool=pool, port=port, healthy=False, detail=exc.reason)
        healthy = observation.status_code < 500
        return PoolHealth(
            pool=pool,
            port=port,
            healthy=healthy,
            status_code=observation.status_code,
            detail=None if healthy else f"HTTP {observation.status_code}",
        )

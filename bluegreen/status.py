import logging

from bluegreen.errors import LifecycleError, ProbeError
from bluegreen.lifecycle import DeploymentLifecycle
from bluegreen.log import STATUS
from bluegreen.models import StatusView
from bluegreen.probe import ProbeClient
from bluegreen.store import ConfigStore

logger = logging.getLogger(__name__)


class StatusReporter:
    """Puts persisted intent next to what the proxy is actually doing.

    Container and routing probes may fail without failing the report; the
    view carries "unknown" and the error text instead.
    """

    def __init__(self, store: ConfigStore, probe: ProbeClient, lifecycle: DeploymentLifecycle):
        self.store = store
        self.probe = probe
        self.lifecycle = lifecycle

    def snapshot(self) -> StatusView:
        view = StatusView(
            active_pool=self.store.active_pool(),
            nginx_port=self.store.get_int("NGINX_PORT"),
        )

        try:
            view.containers = self.lifecycle.list_status()
        except LifecycleError as exc:
            view.containers_error = str(exc)

        try:
            observation = self.probe.observe(view.nginx_port)
        except ProbeError as exc:
            view.probe_error = exc.reason
        else:
            view.observed_status = observation.status_code
            pool = (observation.pool or "").strip().lower()
            view.observed_pool = pool or "unknown"
            view.observed_release = observation.release
        return view

    def report(self, view: StatusView, env_name: str) -> None:
        logger.log(STATUS, "--- Blue/Green Deployment Status ---")
        logger.log(STATUS, "Active Pool in %s: %s", env_name, view.active_pool.value)
        logger.log(STATUS, "Public Nginx Port: %s", view.nginx_port)

        logger.info("Containers:")
        if view.containers_error:
            logger.warning("Could not list containers: %s", view.containers_error)
        for line in view.containers:
            logger.info("  %s", line)

        if view.probe_error:
            logger.warning("Routing probe failed: %s", view.probe_error)
        logger.log(
            STATUS,
            "Live routing: pool=%s release=%s http=%s",
            view.observed_pool,
            view.observed_release or "unknown",
            view.observed_status if view.observed_status is not None else "n/a",
        )
        if view.drift:
            logger.warning(
                "Drift: %s names %s but the proxy is serving %s.",
                env_name,
                view.active_pool.value,
                view.observed_pool,
            )
        logger.log(STATUS, "-------------------------------------")

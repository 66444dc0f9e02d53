import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from bluegreen.chaos import ChaosDriver
from bluegreen.config import Settings, settings as default_settings
from bluegreen.drill import FailoverDrill
from bluegreen.errors import ConfigMissingError
from bluegreen.lifecycle import ComposeLifecycle, DeploymentLifecycle
from bluegreen.log import SUCCESS
from bluegreen.probe import ProbeClient
from bluegreen.proxy import DockerExecProxy, ProxyBackend, ProxyController
from bluegreen.status import StatusReporter
from bluegreen.store import ConfigStore
from bluegreen.switcher import PoolSwitcher

logger = logging.getLogger(__name__)


def check_files(settings: Settings = default_settings):
    """Fail before any command runs if the record or the compose file is missing."""
    logger.info("Validating configuration files...")
    if not Path(settings.env_file).is_file():
        raise ConfigMissingError(settings.env_file, "Environment file")
    if not Path(settings.compose_file).is_file():
        raise ConfigMissingError(settings.compose_file, "Docker Compose file")
    logger.log(SUCCESS, "Configuration files validated.")


@dataclass
class ControlPlane:
    settings: Settings
    store: ConfigStore
    probe: ProbeClient
    proxy: ProxyController
    lifecycle: DeploymentLifecycle
    switcher: PoolSwitcher
    chaos: ChaosDriver
    status: StatusReporter
    drill: FailoverDrill

    def close(self):
        self.probe.close()


def build_control_plane(
    settings: Settings = default_settings,
    store: Optional[ConfigStore] = None,
    probe: Optional[ProbeClient] = None,
    proxy_backend: Optional[ProxyBackend] = None,
    lifecycle: Optional[DeploymentLifecycle] = None,
) -> ControlPlane:
    store = store or ConfigStore.from_path(settings.env_file)
    probe = probe or ProbeClient(settings)
    proxy_backend = proxy_backend or DockerExecProxy(
        settings.proxy_container, settings.proxy_output, settings.proxy_timeout
    )
    lifecycle = lifecycle or ComposeLifecycle(settings.env_file, settings.compose_file)

    proxy = ProxyController(store, proxy_backend, settings)
    chaos = ChaosDriver(store, probe, settings)
    return ControlPlane(
        settings=settings,
        store=store,
        probe=probe,
        proxy=proxy,
        lifecycle=lifecycle,
        switcher=PoolSwitcher(store, proxy),
        chaos=chaos,
        status=StatusReporter(store, probe, lifecycle),
        drill=FailoverDrill(store, probe, chaos, settings),
    )

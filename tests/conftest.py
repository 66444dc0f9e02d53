import re

import httpx
import pytest

from bluegreen.config import Settings
from bluegreen.controlplane import build_control_plane
from bluegreen.errors import LifecycleError
from bluegreen.probe import ProbeClient
from bluegreen.store import ConfigStore

RECORD = (
    "# deployment record\n"
    "ACTIVE_POOL=blue\n"
    "NGINX_PORT=8080\n"
    'BLUE_APP_PORT="8081"\n'
    "GREEN_APP_PORT='8082'\n"
)

TEMPLATE = (
    "server { listen $NGINX_PORT; }\n"
    "route ${ACTIVE_POOL}_primary port $APP_INTERNAL_PORT;\n"
    "proxy_set_header Host $host;\n"
)


class FakeDeployment:
    """Two pools and an nginx proxy in front of them, behind httpx.MockTransport.

    The proxy routes to ``routing`` and fails over to the other pool while the
    routed pool is in chaos mode. Ports listed in ``down`` refuse connections.
    """

    def __init__(self, routing: str = "blue", nginx_port: int = 8080):
        self.nginx_port = nginx_port
        self.ports = {8081: "blue", 8082: "green"}
        self.routing = routing
        self.chaos = {"blue": False, "green": False}
        self.down: set[int] = set()
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        port = request.url.port
        if port in self.down:
            raise httpx.ConnectError("Connection refused", request=request)

        if port == self.nginx_port:
            pool = self.routing
            if self.chaos[pool]:
                pool = "green" if pool == "blue" else "blue"
            if self.chaos[pool]:
                return httpx.Response(502)
            return httpx.Response(200, headers={"X-App-Pool": pool, "X-Release-Id": f"{pool}-1.0.0"})

        pool = self.ports[port]
        if request.url.path == "/chaos/start":
            self.chaos[pool] = True
            return httpx.Response(200, json={"message": "chaos started"})
        if request.url.path == "/chaos/stop":
            self.chaos[pool] = False
            return httpx.Response(200, json={"message": "chaos stopped"})
        if request.url.path == "/version":
            if self.chaos[pool]:
                return httpx.Response(500)
            return httpx.Response(200, headers={"X-App-Pool": pool, "X-Release-Id": f"{pool}-1.0.0"})
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(lambda request: self.handler(request)))

    def paths(self, port: int) -> list[str]:
        return [r.url.path for r in self.requests if r.url.port == port]


class FakeProxyBackend:
    """Records every rendered config; optionally moves the fake proxy's routing."""

    def __init__(self, deployment: FakeDeployment = None, error: Exception = None):
        self.deployment = deployment
        self.error = error
        self.applied: list[str] = []

    def apply(self, config_text: str) -> None:
        if self.error is not None:
            raise self.error
        self.applied.append(config_text)
        if self.deployment is not None:
            match = re.search(r"route (\w+)_primary", config_text)
            self.deployment.routing = match.group(1)


class FakeLifecycle:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[str] = []

    def _call(self, action: str):
        self.calls.append(action)
        if self.fail:
            raise LifecycleError(action, "Cannot connect to the Docker daemon")

    def up(self):
        self._call("up")

    def down(self):
        self._call("down")

    def list_status(self) -> list[str]:
        self._call("ps")
        return ["app_blue  Up 5 minutes", "app_green  Up 5 minutes", "nginx_proxy  Up 5 minutes"]


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / "blue-green.env"
    path.write_text(RECORD)
    return path


@pytest.fixture
def settings(tmp_path, env_file):
    template = tmp_path / "nginx.conf.template"
    template.write_text(TEMPLATE)
    compose = tmp_path / "docker-compose.yml"
    compose.write_text("services: {}\n")
    return Settings(
        env_file=str(env_file),
        compose_file=str(compose),
        proxy_template=str(template),
        log_dir=str(tmp_path / "logs"),
        drill_requests=5,
        drill_timeout=1.0,
        drill_interval=0.0,
    )


@pytest.fixture
def store(env_file):
    return ConfigStore.from_path(env_file)


@pytest.fixture
def deployment():
    return FakeDeployment()


@pytest.fixture
def probe(settings, deployment):
    return ProbeClient(settings, client=deployment.client())


@pytest.fixture
def proxy_backend(deployment):
    return FakeProxyBackend(deployment)


@pytest.fixture
def lifecycle():
    return FakeLifecycle()


@pytest.fixture
def plane(settings, store, probe, proxy_backend, lifecycle):
    return build_control_plane(
        settings,
        store=store,
        probe=probe,
        proxy_backend=proxy_backend,
        lifecycle=lifecycle,
    )

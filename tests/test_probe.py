import httpx
import pytest

from bluegreen.errors import InvalidPoolError, ProbeError
from bluegreen.models import Pool
from bluegreen.probe import ProbeClient


class TestPool:

    def test_other(self):
        assert Pool.BLUE.other is Pool.GREEN
        assert Pool.GREEN.other is Pool.BLUE

    def test_port_key(self):
        assert Pool.GREEN.port_key == "GREEN_APP_PORT"

    def test_parse_is_strict(self):
        assert Pool.parse("blue") is Pool.BLUE
        with pytest.raises(InvalidPoolError):
            Pool.parse("BLUE ")


class TestProbeClient:

    def test_observe_reads_pool_and_release_headers(self, probe):
        observation = probe.observe(8080)
        assert observation.status_code == 200
        assert observation.pool == "blue"
        assert observation.release == "blue-1.0.0"

    def test_header_names_are_configurable(self, settings):
        custom = settings.model_copy(update={"pool_header": "X-Served-By"})
        client = httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, headers={"X-Served-By": "green"}))
        )
        assert ProbeClient(custom, client=client).observe(8080).pool == "green"

    def test_urls_use_configured_host(self, settings):
        remote = settings.model_copy(update={"host": "10.0.0.5"})
        assert ProbeClient(remote).url(8081, "/chaos/stop") == "http://10.0.0.5:8081/chaos/stop"

    def test_connection_refused_is_probe_error(self, probe, deployment):
        deployment.down.add(8080)
        with pytest.raises(ProbeError) as exc_info:
            probe.observe(8080)
        assert exc_info.value.url == "http://localhost:8080/version"

    def test_check_pool(self, probe, deployment):
        assert probe.check_pool(Pool.BLUE, 8081).healthy is True
        deployment.chaos["blue"] = True
        health = probe.check_pool(Pool.BLUE, 8081)
        assert health.healthy is False
        assert health.detail == "HTTP 500"

    def test_check_pool_unreachable(self, probe, deployment):
        deployment.down.add(8082)
        health = probe.check_pool(Pool.GREEN, 8082)
        assert health.healthy is False
        assert health.status_code is None

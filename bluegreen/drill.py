"""
Failover drill: proves that the proxy fails over and recovers.

The drill runs in 3 phases against the public proxy port:

  Phase 1 - Baseline:
    Every sampled request must be served by the active pool with no 5xx.

  Phase 2 - Outage:
    Chaos is induced on the active pool. The proxy should stop routing to it,
    so every sampled request must be served by the backup pool, still with no
    5xx reaching the client.

  Phase 3 - Recovery:
    Chaos is cleared on the active pool. Traffic must return to it.

Each phase is sampled repeatedly until it converges or ``drill_timeout``
runs out. Chaos is always healed before the drill returns, even when the
outage phase fails.
"""

import logging
import time
from typing import Callable

from bluegreen.chaos import ChaosDriver
from bluegreen.config import Settings, settings as default_settings
from bluegreen.errors import DrillError, ProbeError
from bluegreen.log import STATUS, SUCCESS
from bluegreen.models import DrillReport, PhaseReport, Pool
from bluegreen.probe import ProbeClient
from bluegreen.store import ConfigStore

logger = logging.getLogger(__name__)


class FailoverDrill:
    def __init__(
        self,
        store: ConfigStore,
        probe: ProbeClient,
        chaos: ChaosDriver,
        settings: Settings = default_settings,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.probe = probe
        self.chaos = chaos
        self.settings = settings
        self._sleep = sleep
        self._clock = clock

    def sample(self, port: int, count: int) -> tuple[dict[str, int], int]:
        """Send ``count`` requests through the proxy; return per-pool hits and errors."""
        served: dict[str, int] = {}
        errors = 0
        for _ in range(count):
            try:
                observation = self.probe.observe(port)
            except ProbeError:
                errors += 1
                continue
            if observation.status_code >= 500:
                errors += 1
                continue
            pool = observation.pool or "unknown"
            served[pool] = served.get(pool, 0) + 1
        return served, errors

    def wait_for(self, name: str, expected: Pool, port: int) -> PhaseReport:
        count = self.settings.drill_requests
        start = self._clock()
        while True:
            served, errors = self.sample(port, count)
            elapsed = self._clock() - start
            converged = errors == 0 and served == {expected.value: count}
            if converged or elapsed >= self.settings.drill_timeout:
                return PhaseReport(
                    name=name,
                    expected_pool=expected,
                    served=served,
                    errors=errors,
                    converged=converged,
                    elapsed=round(elapsed, 3),
                )
            self._sleep(self.settings.drill_interval)

    def _phase(self, report: DrillReport, name: str, expected: Pool, port: int):
        phase = self.wait_for(name, expected, port)
        report.phases.append(phase)
        log_phase(phase)
        if not phase.converged:
            raise DrillError(
                name,
                f"expected all traffic on {expected.value}, saw {phase.served or 'nothing'} "
                f"with {phase.errors} errors after {phase.elapsed:g}s",
                report,
            )

    def run(self) -> DrillReport:
        config = self.store.snapshot()
        active = config.active_pool
        report = DrillReport(active_pool=active, backup_pool=active.other)
        port = config.nginx_port

        logger.info("Failover drill: active=%s backup=%s via port %s", active.value, active.other.value, port)
        self._phase(report, "baseline", active, port)

        self.chaos.induce_chaos(active)
        try:
            self._phase(report, "outage", active.other, port)
        finally:
            self.chaos.heal_chaos(active)

        self._phase(report, "recovery", active, port)
        logger.log(SUCCESS, "Failover drill passed: %s failed over to %s and recovered.", active.value, active.other.value)
        return report


def log_phase(phase: PhaseReport):
    total = sum(phase.served.values()) + phase.errors
    logger.log(
        STATUS,
        "Phase %-8s expected=%-5s converged=%-5s elapsed=%.1fs",
        phase.name,
        phase.expected_pool.value,
        phase.converged,
        phase.elapsed,
    )
    for pool, count in sorted(phase.served.items()):
        pct = count / total * 100 if total else 0
        logger.log(STATUS, "  %-8s %3d requests (%5.1f%%)", pool, count, pct)
    if phase.errors:
        logger.log(STATUS, "  %-8s %3d requests", "errors", phase.errors)

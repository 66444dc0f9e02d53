import logging

from bluegreen.config import Settings, settings as default_settings
from bluegreen.errors import ChaosInjectionError, ProbeError
from bluegreen.log import SUCCESS
from bluegreen.models import ChaosResult, HealTarget, Pool
from bluegreen.probe import ProbeClient
from bluegreen.store import ConfigStore

logger = logging.getLogger(__name__)


class ChaosDriver:
    """
    Injects and clears synthetic failures on a pool, addressed on its own port.

    Failure policy is asymmetric. A chaos request that does not land raises
    ``ChaosInjectionError``: a failover test run against a pool that never
    failed proves nothing. A heal request that does not land is only logged as
    a warning, since the pool may never have been in chaos mode and a later
    heal or restart clears it anyway.
    """

    def __init__(self, store: ConfigStore, probe: ProbeClient, settings: Settings = default_settings):
        self.store = store
        self.probe = probe
        self.settings = settings

    def induce_chaos(self, pool=None) -> ChaosResult:
        target = Pool.parse(pool) if pool is not None else self.store.active_pool()
        port = self.store.get_int(target.port_key)

        logger.warning("Attempting to induce chaos on the %s pool via port %s...", target.value, port)
        try:
            resp = self.probe.start_chaos(port)
        except ProbeError as exc:
            raise ChaosInjectionError(target, port, exc.reason) from exc

        if self.settings.chaos_require_2xx and not resp.is_success:
            raise ChaosInjectionError(target, port, f"chaos endpoint answered HTTP {resp.status_code}")

        message = (
            f"Chaos successfully triggered on {target.value}. "
            "Nginx should now failover to the backup pool."
        )
        logger.log(SUCCESS, message)
        return ChaosResult(
            pool=target,
            port=port,
            action="start",
            acknowledged=True,
            status_code=resp.status_code,
            message=message,
        )

    def resolve_heal_target(self) -> Pool:
        """Pick the pool to heal when the operator did not name one.

        Legacy mode always heals the configured default pool. Dynamic mode
        probes both pools directly, active pool first, and heals the first one
        that is failing; if neither is, it heals the active pool.
        """
        if self.settings.heal_target is HealTarget.LEGACY:
            return self.settings.default_heal_pool

        active = self.store.active_pool()
        for pool in (active, active.other):
            health = self.probe.check_pool(pool, self.store.get_int(pool.port_key))
            if not health.healthy:
                logger.info("The %s pool is failing (%s); healing it.", pool.value, health.detail)
                return pool

        logger.info("No pool reports a failure; healing the active pool (%s).", active.value)
        return active

    def heal_chaos(self, pool=None) -> ChaosResult:
        target = Pool.parse(pool) if pool is not None else self.resolve_heal_target()
        port = self.store.get_int(target.port_key)

        logger.info(
            "Attempting to stop chaos on the %s pool (port %s) to allow automatic recovery...",
            target.value,
            port,
        )
        try:
            resp = self.probe.stop_chaos(port)
        except ProbeError as exc:
            message = (
                f"Could not connect to the {target.value} app to stop chaos ({exc.reason}). "
                "It may not have been running or in chaos mode."
            )
            logger.warning(message)
            return ChaosResult(pool=target, port=port, action="stop", acknowledged=False, message=message)

        if self.settings.chaos_require_2xx and not resp.is_success:
            message = f"The {target.value} app answered HTTP {resp.status_code} to the heal request."
            logger.warning(message)
            return ChaosResult(
                pool=target,
                port=port,
                action="stop",
                acknowledged=False,
                status_code=resp.status_code,
                message=message,
            )

        message = (
            f"Chaos stopped on the {target.value} pool. "
            f"Nginx should eventually switch traffic back to {target.value}."
        )
        logger.log(SUCCESS, message)
        return ChaosResult(
            pool=target,
            port=port,
            action="stop",
            acknowledged=True,
            status_code=resp.status_code,
            message=message,
        )

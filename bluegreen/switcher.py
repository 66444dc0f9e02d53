import logging

from bluegreen.errors import ProxyUnreachableError, ReloadPendingError, TemplateError
from bluegreen.log import SUCCESS
from bluegreen.models import Pool, SwitchResult
from bluegreen.proxy import ProxyController
from bluegreen.store import ConfigStore

logger = logging.getLogger(__name__)


class PoolSwitcher:
    """
    Moves live traffic from one pool to the other.

    Switch protocol:
    1. Validate the requested pool before touching anything.
    2. Under the store's writer lock, read the persisted ACTIVE_POOL.
    3. If it already names the requested pool, do nothing: no write and no
       reload. Repeating a switch is always safe.
    4. Otherwise atomically rewrite ACTIVE_POOL, then reload the proxy.

    The write and the reload are not transactional. If the reload fails after
    the write, the record already names the new pool while the proxy still
    routes to the old one. That window is reported as ``ReloadPendingError``
    and is closed by ``retry_reload``; the write is never rolled back.
    """

    def __init__(self, store: ConfigStore, proxy: ProxyController):
        self.store = store
        self.proxy = proxy

    def switch_to(self, requested) -> SwitchResult:
        pool = Pool.parse(requested)

        with self.store.write_guard():
            current = self.store.active_pool()
            if current is pool:
                message = f"Pool is already set to {pool.value}. Skipping switch."
                logger.warning(message)
                return SwitchResult(changed=False, previous=current, active=pool, message=message)

            logger.info(
                "Switching ACTIVE_POOL from %s to %s in %s...",
                current.value,
                pool.value,
                self.store.name,
            )
            self.store.set("ACTIVE_POOL", pool.value)

            try:
                self.proxy.reload()
            except (ProxyUnreachableError, TemplateError) as exc:
                raise ReloadPendingError(pool, exc) from exc

        message = f"Pool switched to {pool.value} and Nginx reloaded successfully."
        logger.log(SUCCESS, message)
        return SwitchResult(changed=True, previous=current, active=pool, message=message)

    def retry_reload(self) -> Pool:
        """Re-apply the persisted pool to the proxy without touching the record."""
        with self.store.write_guard():
            pool = self.store.active_pool()
            self.proxy.reload()
        logger.log(SUCCESS, "Nginx reloaded; live routing now follows ACTIVE_POOL=%s.", pool.value)
        return pool

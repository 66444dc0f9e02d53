from typing import Optional


class BlueGreenError(Exception):
    """Base class for every failure the control plane reports to an operator."""

    exit_code = 1


class ConfigMissingError(BlueGreenError):
    """A file the control plane needs before running any command does not exist."""

    def __init__(self, path: str, what: str = "configuration file"):
        self.path = path
        self.what = what
        super().__init__(f"{what} '{path}' not found. Cannot proceed.")


class NotFoundError(BlueGreenError):
    def __init__(self, key: str, source: str = "deployment record"):
        self.key = key
        self.source = source
        super().__init__(f"{key} is not set in {source}")


class PersistError(BlueGreenError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"could not write {path}: {reason}")


class InvalidPoolError(BlueGreenError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid pool specified: {value}. Must be 'blue' or 'green'.")


class ProxyUnreachableError(BlueGreenError):
    def __init__(self, target: str, reason: str = "proxy unavailable"):
        self.target = target
        self.reason = reason
        super().__init__(f"{target}: {reason}")


class TemplateError(BlueGreenError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"proxy configuration could not be generated: {reason}")


class ReloadPendingError(BlueGreenError):
    """The record names the new pool but the proxy has not picked it up.

    Only the reload step needs to be retried; the persisted state is already
    what the operator asked for.
    """

    exit_code = 3

    def __init__(self, pool, cause: BlueGreenError):
        self.pool = pool
        self.cause = cause
        value = getattr(pool, "value", pool)
        super().__init__(
            f"ACTIVE_POOL is now '{value}' but the proxy was not reloaded ({cause}). "
            "State updated but not yet live; run 'reload' to apply it."
        )


class ChaosInjectionError(BlueGreenError):
    def __init__(self, pool, port: int, reason: str):
        self.pool = pool
        self.port = port
        self.reason = reason
        value = getattr(pool, "value", pool)
        super().__init__(
            f"Failed to trigger chaos on {value}: {reason}. "
            f"Check if the container is running on port {port}."
        )


class ProbeError(BlueGreenError):
    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"{url}: {reason}")


class LifecycleError(BlueGreenError):
    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"container lifecycle '{action}' failed: {reason}")


class DrillError(BlueGreenError):
    def __init__(self, phase: str, reason: str, report=None):
        self.phase = phase
        self.reason = reason
        self.report = report
        super().__init__(f"failover drill phase '{phase}' failed: {reason}")


class MalformedRecordError(BlueGreenError):
    def __init__(self, key: str, value: str, reason: str):
        self.key = key
        self.value = value
        self.reason = reason
        super().__init__(f"{key}={value!r} in deployment record is invalid: {reason}")

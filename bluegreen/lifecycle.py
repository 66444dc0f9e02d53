import logging
import subprocess
from typing import Protocol

from bluegreen.errors import LifecycleError

logger = logging.getLogger(__name__)


class DeploymentLifecycle(Protocol):
    def up(self) -> None: ...

    def down(self) -> None: ...

    def list_status(self) -> list[str]: ...


class ComposeLifecycle:
    """Brings the container set up and down with ``docker compose``."""

    def __init__(self, env_file: str, compose_file: str, timeout: float = 300.0):
        self.env_file = env_file
        self.compose_file = compose_file
        self.timeout = timeout

    def _compose(self, *args: str, capture: bool = False) -> str:
        cmd = ["docker", "compose", "--env-file", self.env_file, "-f", self.compose_file, *args]
        action = " ".join(args)
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                capture_output=capture,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise LifecycleError(action, "docker executable not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise LifecycleError(action, f"timed out after {self.timeout:g}s") from exc
        except OSError as exc:
            raise LifecycleError(action, exc.strerror or str(exc)) from exc

        if result.returncode != 0:
            detail = (result.stderr or "").strip() if capture else ""
            raise LifecycleError(action, detail or f"exit status {result.returncode}")
        return result.stdout or ""

    def up(self) -> None:
        self._compose("up", "-d")

    def down(self) -> None:
        self._compose("down")

    def list_status(self) -> list[str]:
        out = self._compose("ps", "--format", "{{.Name}}\t{{.Status}}", capture=True)
        return [line.replace("\t", "  ") for line in out.splitlines() if line.strip()]

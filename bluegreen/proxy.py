import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from bluegreen.config import Settings, settings as default_settings
from bluegreen.errors import (
    MalformedRecordError,
    NotFoundError,
    ProxyUnreachableError,
    TemplateError,
)
from bluegreen.store import ConfigStore

logger = logging.getLogger(__name__)

TEMPLATE_VARS = ("NGINX_PORT", "ACTIVE_POOL", "APP_INTERNAL_PORT")

# Only the three deployment variables are substituted; nginx's own $host,
# $remote_addr etc. must survive rendering untouched.
_NAMES = "|".join(TEMPLATE_VARS)
_VAR_RE = re.compile(rf"\$(?:\{{({_NAMES})\}}|({_NAMES})(?![A-Za-z0-9_]))")


def render_template(template: str, params: dict[str, str]) -> str:
    def substitute(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = params.get(name)
        if value in (None, ""):
            raise TemplateError(f"no value for ${name}")
        return str(value)

    return _VAR_RE.sub(substitute, template)


class ProxyBackend(Protocol):
    def apply(self, config_text: str) -> None: ...


class DockerExecProxy:
    """Installs a rendered config inside the proxy container and hot-reloads nginx.

    ``nginx -s reload`` starts new workers with the new config and lets old
    workers finish their in-flight requests. If ``nginx -t`` rejects the new
    file, the previous file is put back and nothing is reloaded.
    """

    def __init__(self, container: str, output_path: str, timeout: float = 10.0):
        self.container = container
        self.output_path = output_path
        self.timeout = timeout

    def command(self) -> list[str]:
        out = shlex.quote(self.output_path)
        prev = shlex.quote(self.output_path + ".prev")
        script = (
            f"cp -f {out} {prev} 2>/dev/null; "
            f"cat > {out} && "
            f"if nginx -t; then nginx -s reload; "
            f"else cp -f {prev} {out} 2>/dev/null; exit 1; fi"
        )
        return ["docker", "exec", "-i", self.container, "sh", "-c", script]

    def apply(self, config_text: str) -> None:
        try:
            result = subprocess.run(
                self.command(),
                input=config_text,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ProxyUnreachableError(self.container, "docker executable not found") from exc
        except subprocess.TimeoutExpired as exc:
            raise ProxyUnreachableError(
                self.container, f"reload timed out after {self.timeout:g}s"
            ) from exc
        except OSError as exc:
            raise ProxyUnreachableError(self.container, exc.strerror or str(exc)) from exc

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if "test failed" in stderr:
                raise TemplateError(stderr.splitlines()[-1])
            raise ProxyUnreachableError(
                self.container, stderr or f"exit status {result.returncode}"
            )


class ProxyController:
    def __init__(
        self,
        store: ConfigStore,
        backend: ProxyBackend,
        settings: Settings = default_settings,
        template_path: Optional[str] = None,
    ):
        self.store = store
        self.backend = backend
        self.settings = settings
        self.template_path = Path(template_path or settings.proxy_template)

    def params(self) -> dict[str, str]:
        try:
            params = {
                "ACTIVE_POOL": self.store.active_pool().value,
                "NGINX_PORT": str(self.store.get_int("NGINX_PORT")),
            }
        except (NotFoundError, MalformedRecordError) as exc:
            raise TemplateError(str(exc)) from exc

        try:
            params["APP_INTERNAL_PORT"] = str(self.store.get_int("APP_INTERNAL_PORT"))
        except NotFoundError:
            params["APP_INTERNAL_PORT"] = str(self.settings.app_internal_port)
        except MalformedRecordError as exc:
            raise TemplateError(str(exc)) from exc
        return params

    def render(self, params: Optional[dict[str, str]] = None) -> str:
        try:
            template = self.template_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise TemplateError(
                f"cannot read template {self.template_path}: {exc.strerror or exc}"
            ) from exc
        return render_template(template, params or self.params())

    def reload(self) -> None:
        params = self.params()
        config_text = self.render(params)
        logger.info(
            "Reloading Nginx configuration (ACTIVE_POOL=%s, NGINX_PORT=%s)...",
            params["ACTIVE_POOL"],
            params["NGINX_PORT"],
        )
        self.backend.apply(config_text)

from pydantic_settings import BaseSettings, SettingsConfigDict

from bluegreen.models import HealTarget, Pool


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BG_")

    env_file: str = "blue-green.env"
    compose_file: str = "docker-compose.yml"
    log_dir: str = "."
    log_file_prefix: str = "bg_control"

    host: str = "localhost"
    proxy_container: str = "nginx_proxy"
    proxy_template: str = "nginx/nginx.conf.template"
    proxy_output: str = "/etc/nginx/conf.d/default.conf"
    app_internal_port: int = 3000

    probe_timeout: float = 5.0
    proxy_timeout: float = 10.0
    pool_header: str = "X-App-Pool"
    release_header: str = "X-Release-Id"
    probe_path: str = "/version"

    chaos_mode: str = "error"
    chaos_require_2xx: bool = False
    heal_target: HealTarget = HealTarget.DYNAMIC
    default_heal_pool: Pool = Pool.BLUE

    drill_requests: int = 20
    drill_timeout: float = 30.0
    drill_interval: float = 0.5


settings = Settings()

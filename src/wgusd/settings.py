from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="WGUSD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Domain holding the SRV record, e.g. "wg.example.com" -> _wireguard._udp.wg.example.com
    zone: str = ""
    # WireGuard interface to reconfigure. Empty means dry-run: resolve and print only.
    iface: str = ""
    # Static "host:port" used when the SRV lookup fails. Empty means no fallback.
    fallback: str = ""
    # 0 = warnings, 1 = info, 2+ = debug.
    verbosity: int = 0

    srv_service: str = "wireguard"
    srv_proto: str = "udp"
    # Empty list keeps the system resolver configuration (/etc/resolv.conf).
    nameservers: list[str] = Field(default_factory=list)
    dns_timeout_seconds: float = 5.0

    wg_binary: str = "wg"

    # Optional node_exporter textfile collector target, e.g. /var/lib/node_exporter/wgusd.prom
    metrics_textfile: str = ""


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

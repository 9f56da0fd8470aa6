"""
config/settings.py — Central configuration via env vars + YAML override.

Priority: ENV > config.yaml > defaults

  VMIX_API_URL   switcher target, e.g. tcp://10.0.0.5:8099 or http://10.0.0.5:8088/api/
  WEB_URL        public bind address as host[:port] (HOSTNAME is honoured too)
"""

from __future__ import annotations

import os
import socket
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tally_relay.core.backoff import DEFAULT_BASE_MS, DEFAULT_MAX_MS
from tally_relay.core.directory import DEFAULT_INPUT_COUNT
from tally_relay.core.protocol import DEFAULT_TCP_PORT

DEFAULT_WEB_PORT = 3000


def split_host_port(target: str, default_port: Optional[int] = None) -> tuple[str, Optional[int]]:
    """Split 'host', 'host:port' or 'scheme://host:port/...' into (host, port)."""
    target = target.strip()
    if "://" not in target:
        target = "//" + target
    parts = urlsplit(target)
    if not parts.hostname:
        raise ValueError(f"No host in {target!r}")
    return parts.hostname, parts.port or default_port


def detect_lan_address() -> str:
    """First non-loopback IPv4 address of this machine, else its name, else 127.0.0.1."""
    try:
        hostname = socket.gethostname()
    except OSError:
        hostname = ""
    try:
        addresses = socket.gethostbyname_ex(hostname)[2] if hostname else []
    except OSError:
        addresses = []
    for address in addresses:
        if not address.startswith("127."):
            return address
    return hostname or "127.0.0.1"


def _env_names(model: type[BaseSettings], field: str) -> list[str]:
    alias = model.model_fields[field].validation_alias
    if isinstance(alias, AliasChoices):
        return [choice.upper() for choice in alias.choices if isinstance(choice, str)]
    return [f"{model.model_config.get('env_prefix', '')}{field}".upper()]


def _without_env(model: type[BaseSettings], data: dict) -> dict:
    """Drop YAML keys already set through the environment, which must win."""
    env = {name.upper() for name in os.environ}
    return {
        key: value
        for key, value in data.items()
        if key not in model.model_fields or not any(name in env for name in _env_names(model, key))
    }


class SwitcherSettings(BaseSettings):
    api_url: Optional[str] = Field(None, description="vMix API URL (tcp://host:port or the http API URL)")
    tcp_port: int = Field(DEFAULT_TCP_PORT, description="vMix TCP API port when api_url is an http URL")
    input_count: int = Field(DEFAULT_INPUT_COUNT, ge=1, description="Number of inputs to resolve names for")
    retry_base_ms: int = Field(DEFAULT_BASE_MS, gt=0, description="First reconnect delay (ms)")
    retry_max_ms: int = Field(DEFAULT_MAX_MS, gt=0, description="Reconnect delay cap (ms)")
    connect_timeout: float = Field(5.0, description="Seconds to wait for the TCP connect")
    handshake_timeout: float = Field(10.0, description="Seconds to wait for all input names")

    model_config = SettingsConfigDict(env_prefix="VMIX_")

    def target(self) -> tuple[str, int]:
        """(host, port) of the vMix TCP API."""
        if not self.api_url:
            raise ValueError("vMix API URL is not set")
        host, port = split_host_port(self.api_url, self.tcp_port)
        scheme = urlsplit(self.api_url).scheme.lower() if "://" in self.api_url else ""
        if scheme in ("http", "https"):
            # The http API lives on another port than the TCP API.
            port = self.tcp_port
        return host, port


class WebSettings(BaseSettings):
    url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("WEB_URL", "HOSTNAME", "url"),
        description="Public address as host[:port]",
    )
    host: Optional[str] = Field(None, description="Bind host (overrides url)")
    port: Optional[int] = Field(None, description="Bind port (overrides url)")
    log_level: str = Field("info", description="Log level")
    assets_dir: Path = Field(Path("assets"), description="Front-end pages")
    dist_dir: Path = Field(Path("dist"), description="Compiled front-end scripts")

    model_config = SettingsConfigDict(env_prefix="WEB_")

    def bind_address(self) -> tuple[str, int]:
        url_host, url_port = split_host_port(self.url) if self.url else (None, None)
        host = self.host or url_host or detect_lan_address()
        port = self.port or url_port or DEFAULT_WEB_PORT
        return host, port


class Settings(BaseSettings):
    switcher: SwitcherSettings = Field(default_factory=SwitcherSettings)
    web: WebSettings = Field(default_factory=WebSettings)
    config_file: Path = Field(Path("config.yaml"), description="Path to YAML config file")

    model_config = SettingsConfigDict(env_prefix="TALLY_")

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings, merging YAML file if present."""
        path = config_path or Path(os.environ.get("TALLY_CONFIG_FILE", "config.yaml"))
        yaml_data: dict = {}

        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

        switcher = SwitcherSettings(**_without_env(SwitcherSettings, yaml_data.get("switcher") or {}))
        web = WebSettings(**_without_env(WebSettings, yaml_data.get("web") or {}))

        return cls(switcher=switcher, web=web, config_file=path)

    def to_yaml(self, path: Path) -> None:
        """Save current settings to YAML."""
        data = {
            "switcher": self.switcher.model_dump(exclude_none=True),
            "web": {
                **self.web.model_dump(exclude_none=True),
                "assets_dir": str(self.web.assets_dir),
                "dist_dir": str(self.web.dist_dir),
            },
        }
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

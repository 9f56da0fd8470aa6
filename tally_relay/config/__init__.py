"""config — Settings, env loading, YAML config."""
from .settings import Settings, SwitcherSettings, WebSettings, detect_lan_address, split_host_port

__all__ = ["Settings", "SwitcherSettings", "WebSettings", "detect_lan_address", "split_host_port"]

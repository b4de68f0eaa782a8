"""Configuration loading utilities for the chat hub.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable CHAT_HUB_CONFIG
3. Fallback to "config/default.yaml"

It also supports optional overrides from environment variables with prefix
``CHAT_HUB__`` (e.g., CHAT_HUB__LIVENESS__INTERVAL_S=5).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger("chat_hub.config")

ENV_PREFIX = "CHAT_HUB__"
ENV_CONFIG_PATH = "CHAT_HUB_CONFIG"
DEFAULT_CONFIG_PATH = "config/default.yaml"


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix CHAT_HUB__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., CHAT_HUB__STORAGE__DATA_DIR -> cfg["storage"]["data_dir"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        leaf = parts[-1]
        if value.lower() in {"true", "false"}:
            sub[leaf] = value.lower() == "true"
        else:
            try:
                if "." in value:
                    sub[leaf] = float(value)
                else:
                    sub[leaf] = int(value)
            except ValueError:
                sub[leaf] = value
    return cfg


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the chat hub.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``CHAT_HUB_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Parsed configuration dictionary with environment overrides applied.
    """
    if path is None:
        path = os.environ.get(ENV_CONFIG_PATH, DEFAULT_CONFIG_PATH)

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        cfg: Dict[str, Any] = {
            "storage": {"data_dir": "data", "uploads_dir": "public/uploads"},
        }
        return _apply_env_overrides(cfg)

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(cfg, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(cfg)


@dataclass
class HubSettings:
    """Typed view over the config dict, with the defaults the hub runs on."""

    data_dir: str = "data"
    uploads_dir: str = "public/uploads"
    public_dir: Optional[str] = None
    ws_path: str = "/"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    probe_interval_s: float = 30.0
    send_timeout_s: float = 5.0
    min_username_chars: int = 2
    log_level: str = "INFO"
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "HubSettings":
        storage = cfg.get("storage", {}) or {}
        server = cfg.get("server", {}) or {}
        liveness = cfg.get("liveness", {}) or {}
        users = cfg.get("users", {}) or {}
        log_cfg = cfg.get("logging", {}) or {}
        defaults = cls()

        public_dir = storage.get("public_dir", defaults.public_dir)
        return cls(
            data_dir=str(storage.get("data_dir") or defaults.data_dir),
            uploads_dir=str(storage.get("uploads_dir") or defaults.uploads_dir),
            public_dir=str(public_dir) if public_dir else None,
            ws_path=str(server.get("ws_path") or defaults.ws_path),
            cors_origins=list(server.get("cors_origins") or defaults.cors_origins),
            probe_interval_s=float(liveness.get("interval_s", defaults.probe_interval_s)),
            send_timeout_s=float(server.get("send_timeout_s", defaults.send_timeout_s)),
            min_username_chars=int(users.get("min_chars", defaults.min_username_chars)),
            log_level=str(log_cfg.get("level") or defaults.log_level),
            log_format=str(log_cfg.get("format") or defaults.log_format),
        )

from __future__ import annotations

import copy
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from t2.utils import ConfigError, validate_config

GULP_POLICIES = ("sentinel", "count")
FEATURE_MODES = ("log2", "linear")

DEFAULTS: Dict[str, Any] = {
    "filter": {"min_dm": 20.0, "max_dm": 3000.0, "min_snr": 20.0},
    "gulp": {"policy": "sentinel", "size": 1024},
    "clustering": {"min_pts": 5, "eps": 14.0, "features": "log2"},
    "receiver": {"host": "127.0.0.1", "port": 12345, "bufsize": 512},
    "sinks": {
        "database": {"url": None, "migrate": True},
        "plot": {"dir": None, "batch": True},
        "log": {"enabled": False},
    },
}


@dataclass(frozen=True)
class PipelineConfig:
    min_dm: float = 20.0
    max_dm: float = 3000.0
    min_snr: float = 20.0
    gulp_policy: str = "sentinel"
    gulp_size: int = 1024
    min_pts: int = 5
    eps: float = 14.0
    features: str = "log2"

    def __post_init__(self):
        for name in ("min_dm", "max_dm", "min_snr", "eps"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigError(f"{name} must be a finite number, got {getattr(self, name)}")
        if self.min_dm >= self.max_dm:
            raise ConfigError(f"min_dm ({self.min_dm}) must be below max_dm ({self.max_dm})")
        if self.gulp_policy not in GULP_POLICIES:
            raise ConfigError(f"Unknown gulp policy: {self.gulp_policy}")
        if self.gulp_policy == "count" and self.gulp_size < 1:
            raise ConfigError(f"gulp size must be >= 1 for the count policy, got {self.gulp_size}")
        if self.min_pts < 1:
            raise ConfigError(f"min_pts must be >= 1, got {self.min_pts}")
        if not self.eps > 0:
            raise ConfigError(f"eps must be > 0, got {self.eps}")
        if self.features not in FEATURE_MODES:
            raise ConfigError(f"Unknown feature mode: {self.features}")

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "PipelineConfig":
        flt = cfg.get("filter", {})
        gulp = cfg.get("gulp", {})
        cl = cfg.get("clustering", {})
        return cls(
            min_dm=float(flt.get("min_dm", 20.0)),
            max_dm=float(flt.get("max_dm", 3000.0)),
            min_snr=float(flt.get("min_snr", 20.0)),
            gulp_policy=gulp.get("policy", "sentinel"),
            gulp_size=int(gulp.get("size", 1024)),
            min_pts=int(cl.get("min_pts", 5)),
            eps=float(cl.get("eps", 14.0)),
            features=cl.get("features", "log2"),
        )


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> None:
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _merge(base[k], v)
        else:
            base[k] = v


def apply_overrides(cfg: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> None:
    if not overrides:
        return

    flt = cfg.setdefault("filter", {})
    for key in ("min_dm", "max_dm", "min_snr"):
        if overrides.get(key) is not None:
            flt[key] = float(overrides[key])

    gulp = cfg.setdefault("gulp", {})
    if overrides.get("gulp_policy") is not None:
        gulp["policy"] = overrides["gulp_policy"]
    if overrides.get("gulp_size") is not None:
        gulp["size"] = int(overrides["gulp_size"])

    cl = cfg.setdefault("clustering", {})
    if overrides.get("min_pts") is not None:
        cl["min_pts"] = int(overrides["min_pts"])
    if overrides.get("eps") is not None:
        cl["eps"] = float(overrides["eps"])
    if overrides.get("features") is not None:
        cl["features"] = overrides["features"]

    rx = cfg.setdefault("receiver", {})
    if overrides.get("host") is not None:
        rx["host"] = overrides["host"]
    if overrides.get("port") is not None:
        rx["port"] = int(overrides["port"])

    sinks = cfg.setdefault("sinks", {})
    db = sinks.setdefault("database", {})
    if overrides.get("db_url") is not None:
        db["url"] = overrides["db_url"]
    if overrides.get("migrate") is not None:
        db["migrate"] = overrides["migrate"]
    plot = sinks.setdefault("plot", {})
    if overrides.get("plot_dir") is not None:
        plot["dir"] = overrides["plot_dir"]
    if overrides.get("plot_batch") is not None:
        plot["batch"] = overrides["plot_batch"]
    if overrides.get("log_sink") is not None:
        sinks.setdefault("log", {})["enabled"] = overrides["log_sink"]


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Defaults <- YAML file <- CLI overrides, schema-checked at each layer."""
    cfg = copy.deepcopy(DEFAULTS)
    if path:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
        validate_config(loaded)
        _merge(cfg, loaded)

    apply_overrides(cfg, overrides)
    db = cfg["sinks"]["database"]
    if not db.get("url"):
        db["url"] = os.getenv("DB_URL") or None
    validate_config(cfg)
    # Fail fast on semantic errors too
    PipelineConfig.from_dict(cfg)
    return cfg

# naw/config.py
from __future__ import annotations
import copy
from pathlib import Path
from typing import Any, Dict, Optional

from naw.control.controller import AdaptiveController
from naw.control.mode_resolver import ModeRules
from naw.io.signal_source import create_source, known_config_keys, source_class

# --------- defaults (mirror configs/defaults.yaml) ---------
DEFAULTS: Dict[str, Dict[str, Any]] = {
    "controller": {
        "interval_sec": 1.0,
        "calibration_sec": 3.0,
        "history_capacity": 30,
    },
    "signal": {
        "source": "synthetic",
        "seed": 4242,
        "initial_stress": 0.2,
        "initial_bpm": 65,
        "stress_step": 0.1,
        "hr_smoothing": 0.9,
        "hr_jitter": 4.0,
        "device": "Polar Verity Sense",
        "window_sec": 30.0,
        "max_sample_age_sec": None,
    },
    "modes": {
        "flow_max": 0.4,
        "balanced_max": 0.75,
        "focus_max": 0.9,
    },
    "logging": {
        "level": "INFO",
        "history_csv": None,
    },
}


def _safe_load_yaml(path) -> dict:
    """Load YAML if present; else return {} (prints a hint on parse errors)."""
    if path is None:
        return {}
    p = Path(path)
    if not p.exists():
        return {}
    try:
        import yaml  # requires PyYAML
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except Exception as e:
        print(f"[WARN] Could not parse YAML at {p} ({e}). Falling back to defaults.")
        return {}
    if not isinstance(data, dict):
        print(f"[WARN] {p} does not hold a mapping. Falling back to defaults.")
        return {}
    return data


def merge_config(base: dict, overrides: Optional[dict]) -> dict:
    """Section-wise merge; returns a new dict, `base` is left untouched."""
    cfg = copy.deepcopy(base)
    for k, v in (overrides or {}).items():
        if isinstance(v, dict) and isinstance(cfg.get(k), dict):
            cfg[k].update(v)
        else:
            cfg[k] = v
    return cfg


def load_config(path=None, cli_overrides: Optional[dict] = None) -> dict:
    """DEFAULTS <- YAML file <- CLI overrides (entries set to None are ignored)."""
    cfg = merge_config(DEFAULTS, _safe_load_yaml(path))
    cleaned = {}
    for section, values in (cli_overrides or {}).items():
        kept = {k: v for k, v in (values or {}).items() if v is not None}
        if kept:
            cleaned[section] = kept
    return merge_config(cfg, cleaned)


def source_settings(cfg: dict) -> tuple:
    """
    (source name, kwargs for that source) from the shared `signal` section.
    Keys no registered source understands are rejected, so a typo in YAML is not silently ignored.
    """
    sig = dict(cfg["signal"])
    name = sig.pop("source", "synthetic")
    unknown = sorted(set(sig) - set(known_config_keys()))
    if unknown:
        raise ValueError(f"Unknown signal setting(s): {unknown}. Known: {known_config_keys()}")
    wanted = source_class(name).CONFIG_KEYS
    return name, {k: v for k, v in sig.items() if k in wanted}


def build_controller(cfg: dict, *, sensor=None, clock=None):
    """Wire source, rules and controller from a resolved config."""
    name, kwargs = source_settings(cfg)
    if sensor is not None:
        kwargs["sensor"] = sensor
    source = create_source(name, **kwargs)
    rules = ModeRules(**cfg["modes"])
    c = cfg["controller"]
    return AdaptiveController(
        source,
        history_capacity=int(c["history_capacity"]),
        interval_sec=float(c["interval_sec"]),
        calibration_sec=float(c["calibration_sec"]),
        rules=rules,
        clock=clock,
        log_level=cfg["logging"].get("level", "INFO"),
    )

"""
pqdag configuration loader.

Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (PQDAG_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)

Sections
--------
crypto: { sig_alg, rng }
ledger: { genesis_policy }
log:    { level, format, file }

Stdlib only so it can be imported before any native backend is loaded.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

try:  # py311+
    import tomllib as _toml
except ImportError:  # py310: JSON config only
    _toml = None  # type: ignore[assignment]


DEFAULT_SIG_ALG = "Falcon-1024"
GENESIS_POLICIES = ("bootstrap", "open")
LOG_FORMATS = ("auto", "json", "text")
# liboqs RNG back-ends accepted by oqs.rand.randombytes_switch_algorithm
RNG_CHOICES = ("system", "OpenSSL", "NIST-KAT")

ENV_VARS = {
    "PQDAG_SIG_ALG": ("crypto", "sig_alg"),
    "PQDAG_RNG": ("crypto", "rng"),
    "PQDAG_GENESIS_POLICY": ("ledger", "genesis_policy"),
    "PQDAG_LOG_LEVEL": ("log", "level"),
    "PQDAG_LOG_FORMAT": ("log", "format"),
    "PQDAG_LOG_FILE": ("log", "file"),
}


# ------------------------------
# Typed configuration model
# ------------------------------


@dataclass
class CryptoConfig:
    sig_alg: str = DEFAULT_SIG_ALG
    rng: Optional[str] = None  # None keeps the liboqs default

    def validate(self) -> None:
        if not isinstance(self.sig_alg, str) or not self.sig_alg.strip():
            raise ConfigError("crypto.sig_alg must be a non-empty string", value=self.sig_alg)
        if self.rng is not None and self.rng not in RNG_CHOICES:
            raise ConfigError(
                f"crypto.rng must be one of {', '.join(RNG_CHOICES)}", value=self.rng
            )


@dataclass
class LedgerConfig:
    genesis_policy: str = "bootstrap"

    def validate(self) -> None:
        if self.genesis_policy not in GENESIS_POLICIES:
            raise ConfigError(
                "ledger.genesis_policy must be 'bootstrap' or 'open'",
                value=self.genesis_policy,
            )


@dataclass
class LogConfig:
    level: str = "INFO"
    format: str = "auto"
    file: Optional[Path] = None

    def validate(self) -> None:
        if not isinstance(logging.getLevelName(self.level), int):
            raise ConfigError("log.level is not a logging level name", value=self.level)
        if self.format not in LOG_FORMATS:
            raise ConfigError("log.format must be auto, json or text", value=self.format)


@dataclass
class Config:
    crypto: CryptoConfig
    ledger: LedgerConfig
    log: LogConfig

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        if d["log"]["file"] is not None:
            d["log"]["file"] = str(d["log"]["file"])
        return d


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    with path.open("rb") as f:
        if suffix in {".toml", ".tml"}:
            if _toml is None:
                raise ConfigError("TOML config needs Python 3.11+; use JSON", path=str(path))
            try:
                return _toml.load(f)
            except _toml.TOMLDecodeError as e:
                raise ConfigError(f"invalid TOML: {e}", path=str(path)) from e
        if suffix == ".json":
            try:
                data = json.load(f)
            except ValueError as e:
                raise ConfigError(f"invalid JSON: {e}", path=str(path)) from e
            if not isinstance(data, dict):
                raise ConfigError("config root must be an object", path=str(path))
            return data
    raise ConfigError(f"unsupported config format {suffix!r}; use .toml or .json", path=str(path))


def _merge_dict(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    """Nested dict merge: values in b override a."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


def _env_layer() -> Dict[str, Any]:
    layer: Dict[str, Dict[str, Any]] = {}
    for name, (section, key) in ENV_VARS.items():
        value = os.environ.get(name)
        if value is None or value.strip() == "":
            continue
        layer.setdefault(section, {})[key] = value.strip()
    return layer


# ------------------------------
# Main loader
# ------------------------------


def load(config_file: Optional[str | Path] = None, **overrides: Any) -> Config:
    """
    Load configuration.

    Precedence: overrides > env > file > defaults.

    overrides : Any
        Keyword overrides per section, e.g. ``load(crypto={"sig_alg": "ML-DSA-65"})``.
    """
    base: Dict[str, Any] = {
        "crypto": asdict(CryptoConfig()),
        "ledger": asdict(LedgerConfig()),
        "log": asdict(LogConfig()),
    }

    if config_file:
        base = _merge_dict(base, _load_file(Path(config_file).expanduser()))
    base = _merge_dict(base, _env_layer())
    if overrides:
        base = _merge_dict(base, overrides)

    unknown: List[str] = sorted(set(base) - {"crypto", "ledger", "log"})
    if unknown:
        raise ConfigError("unknown config sections", sections=unknown)

    try:
        crypto = CryptoConfig(**base["crypto"])
        ledger = LedgerConfig(**base["ledger"])
        log = LogConfig(**base["log"])
    except TypeError as e:
        raise ConfigError(f"unknown config key: {e}") from e

    ledger.genesis_policy = str(ledger.genesis_policy).lower()
    log.level = str(log.level).upper()
    log.format = str(log.format).lower()
    log.file = Path(log.file).expanduser() if log.file else None
    cfg = Config(crypto=crypto, ledger=ledger, log=log)

    cfg.crypto.validate()
    cfg.ledger.validate()
    cfg.log.validate()
    return cfg


__all__ = [
    "DEFAULT_SIG_ALG",
    "CryptoConfig",
    "LedgerConfig",
    "LogConfig",
    "Config",
    "load",
]

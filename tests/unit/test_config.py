from __future__ import annotations

import json
from pathlib import Path

import pytest

from pqdag import config
from pqdag.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in config.ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    cfg = config.load()
    assert cfg.crypto.sig_alg == "Falcon-1024"
    assert cfg.crypto.rng is None
    assert cfg.ledger.genesis_policy == "bootstrap"
    assert cfg.log.level == "INFO" and cfg.log.format == "auto" and cfg.log.file is None


def test_json_file_then_env_then_overrides(tmp_path, monkeypatch):
    path = tmp_path / "pqdag.json"
    path.write_text(json.dumps({"crypto": {"sig_alg": "ML-DSA-65"}, "log": {"level": "debug"}}))

    cfg = config.load(path)
    assert cfg.crypto.sig_alg == "ML-DSA-65"
    assert cfg.log.level == "DEBUG"

    monkeypatch.setenv("PQDAG_SIG_ALG", "Falcon-512")
    monkeypatch.setenv("PQDAG_GENESIS_POLICY", "OPEN")
    cfg = config.load(path)
    assert cfg.crypto.sig_alg == "Falcon-512"
    assert cfg.ledger.genesis_policy == "open"

    cfg = config.load(path, crypto={"sig_alg": "Falcon-1024"})
    assert cfg.crypto.sig_alg == "Falcon-1024"


def test_toml_file(tmp_path):
    pytest.importorskip("tomllib")
    path = tmp_path / "pqdag.toml"
    path.write_text('[ledger]\ngenesis_policy = "open"\n\n[log]\nformat = "json"\nfile = "logs/pqdag.log"\n')
    cfg = config.load(path)
    assert cfg.ledger.genesis_policy == "open"
    assert cfg.log.format == "json"
    assert cfg.log.file == Path("logs/pqdag.log")
    assert cfg.to_dict()["log"]["file"] == "logs/pqdag.log"


def test_env_blank_values_are_ignored(monkeypatch):
    monkeypatch.setenv("PQDAG_LOG_LEVEL", "  ")
    assert config.load().log.level == "INFO"


@pytest.mark.parametrize(
    "overrides",
    [
        {"crypto": {"rng": "dice"}},
        {"crypto": {"sig_alg": ""}},
        {"ledger": {"genesis_policy": "closed"}},
        {"log": {"level": "CHATTY"}},
        {"log": {"format": "xml"}},
        {"log": {"colour": True}},
        {"network": {"port": 1}},
    ],
)
def test_invalid_settings_raise_config_error(overrides):
    with pytest.raises(ConfigError):
        config.load(**overrides)


def test_file_errors(tmp_path):
    with pytest.raises(ConfigError):
        config.load(tmp_path / "missing.json")

    yaml_file = tmp_path / "pqdag.yaml"
    yaml_file.write_text("crypto: {}\n")
    with pytest.raises(ConfigError):
        config.load(yaml_file)

    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2]")
    with pytest.raises(ConfigError):
        config.load(bad)

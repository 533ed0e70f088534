from __future__ import annotations

import os
import stat

import pytest
import yaml
from pydantic import ValidationError

from failover_monitor.config import (
    DEFAULT_TICK_SECONDS,
    MonitorConfig,
    ProbeKindConfig,
    default_config,
    load_config,
    write_default_config,
)
from failover_monitor.probes.base import ProbeKind


def test_defaults_enable_ping_only() -> None:
    cfg = MonitorConfig()
    assert cfg.mode == "alert"
    assert cfg.enabled_kinds() == [ProbeKind.PING]
    assert cfg.http.timeout == 10
    assert cfg.cooldown_minutes == 5
    assert cfg.webhook.method == "POST"


@pytest.mark.parametrize("field,value", [("frequency", 5), ("failcount", 0)])
def test_kind_config_rejects_out_of_range(field: str, value: int) -> None:
    with pytest.raises(ValidationError):
        ProbeKindConfig(**{field: value})


def test_domains_are_stripped_and_deduplicated() -> None:
    kc = ProbeKindConfig(domains=[" a.example.com ", "a.example.com", "", "b.example.com"])
    assert kc.domains == ["a.example.com", "b.example.com"]


def test_targets_and_min_frequency_follow_enabled_kinds() -> None:
    cfg = MonitorConfig(
        ping=ProbeKindConfig(enabled=True, frequency=60, domains=["a"]),
        tcp=ProbeKindConfig(enabled=True, frequency=15, domains=["b:22"]),
        http=ProbeKindConfig(enabled=False, frequency=10, domains=["https://c"]),
    )
    assert cfg.targets_by_kind() == {ProbeKind.PING: ["a"], ProbeKind.TCP: ["b:22"]}
    assert cfg.all_targets() == {"a", "b:22"}
    assert cfg.min_frequency() == 15

    nothing = MonitorConfig(ping=ProbeKindConfig(enabled=False))
    assert nothing.min_frequency() == DEFAULT_TICK_SECONDS


def test_write_default_config_round_trips(tmp_path, monkeypatch) -> None:
    for var in ("FAILOVER_MONITOR_MODE", "FAILOVER_MONITOR_REMOTE_URL", "FAILOVER_MONITOR_DB", "LOG_LEVEL", "CLOUDFLARE_API_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    path = write_default_config(tmp_path / "conf" / "monitor.yaml")

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert data["ping"]["domains"] == ["example1.com", "example2.com"]
    assert load_config(str(path)) == default_config()


def test_load_config_missing_file_gives_defaults(tmp_path, monkeypatch) -> None:
    for var in ("FAILOVER_MONITOR_MODE", "FAILOVER_MONITOR_REMOTE_URL", "FAILOVER_MONITOR_DB", "LOG_LEVEL", "CLOUDFLARE_API_TOKEN"):
        monkeypatch.delenv(var, raising=False)
    assert load_config(str(tmp_path / "absent.yaml")) == MonitorConfig()


def test_env_overrides(tmp_path, monkeypatch) -> None:
    path = tmp_path / "monitor.yaml"
    path.write_text(
        "mode: alert\nlog:\n  json_output: true\ndns:\n  resolver: 1.1.1.1\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("FAILOVER_MONITOR_MODE", "FAILOVER")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", "tok")
    monkeypatch.setenv("FAILOVER_MONITOR_DB", str(tmp_path / "state.db"))
    monkeypatch.setenv("FAILOVER_MONITOR_REMOTE_URL", "https://cfg.example/remote.yaml")

    cfg = load_config(str(path))

    assert cfg.mode == "failover"
    assert cfg.log.level == "DEBUG"
    assert cfg.log.json_output is True
    assert cfg.dns.api_token == "tok"
    assert cfg.dns.resolver == "1.1.1.1"
    assert cfg.db_path == str(tmp_path / "state.db")
    assert cfg.remote_config_url == "https://cfg.example/remote.yaml"
    assert cfg.remote_update_freq == 300


def test_load_config_rejects_non_mapping(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("FAILOVER_MONITOR_MODE", raising=False)
    path = tmp_path / "monitor.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))

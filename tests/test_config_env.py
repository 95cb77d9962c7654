from labvoyager.common.config import env_overrides, load_config


def test_default_config_ships_all_phase_switches(monkeypatch):
    monkeypatch.delenv("LABVOYAGER_LOG_LEVEL", raising=False)

    cfg = load_config()

    assert cfg.section("logging")["level"] == "INFO"
    assert all(cfg.section("phases").values())
    assert "tiny" in cfg.section("appliance_sizes")
    assert cfg.section("missing") == {}


def test_default_config_ships_runtime_sections(monkeypatch):
    for key in ("LABVOYAGER_LOG_LEVEL", "LABVOYAGER_RUN_LOG", "LABVOYAGER_REACHABILITY_TIMEOUT", "LABVOYAGER_INSECURE"):
        monkeypatch.delenv(key, raising=False)

    cfg = load_config()

    assert cfg.section("logging") == {"level": "INFO", "run_log": "logs/labvoyager-run.log"}
    assert cfg.section("connection") == {"insecure": True, "port": 443}
    assert cfg.section("bootstrap") == {"reachability_interval": 60, "reachability_timeout": 1800}
    assert cfg.section("patching")["remote_dir"] == "/tmp"
    assert cfg.section("tasks")["poll_interval"] == 2


def test_environment_overrides(tmp_path, monkeypatch):
    cfg_file = tmp_path / "conf.yml"
    cfg_file.write_text(
        "logging:\n  level: INFO\n  run_log: run.log\nbootstrap:\n  reachability_timeout: 60\n",
        encoding="utf-8",
    )

    monkeypatch.setenv("LABVOYAGER_LOG_LEVEL", "debug")
    monkeypatch.setenv("LABVOYAGER_REACHABILITY_TIMEOUT", "900")
    monkeypatch.setenv("LABVOYAGER_INSECURE", "yes")

    cfg = load_config(cfg_file)

    assert cfg["logging"]["level"] == "DEBUG"
    assert cfg["logging"]["run_log"] == "run.log"
    assert cfg["bootstrap"]["reachability_timeout"] == 900
    assert cfg["connection"]["insecure"] is True


def test_invalid_timeout_override_is_ignored(tmp_path, monkeypatch):
    cfg_file = tmp_path / "c.yml"
    cfg_file.write_text("bootstrap:\n  reachability_timeout: 60\n", encoding="utf-8")

    monkeypatch.setenv("LABVOYAGER_REACHABILITY_TIMEOUT", "soon")

    cfg = load_config(cfg_file)

    assert cfg.bootstrap["reachability_timeout"] == 60


def test_env_overrides_reads_explicit_mapping():
    overrides = env_overrides({"LABVOYAGER_INSECURE": "off", "LABVOYAGER_RUN_LOG": "  "})

    assert overrides == {"connection": {"insecure": False}}

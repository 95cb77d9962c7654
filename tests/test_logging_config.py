import logging
import re

from labvoyager.common import logging_config
from labvoyager.common.logging_config import RunLog


def test_setup_logging_updates_level(tmp_path, monkeypatch):
    log_path = tmp_path / "labvoyager.log"
    monkeypatch.setattr(logging_config, "DEFAULT_LOG_FILE", log_path, raising=False)
    monkeypatch.setattr(logging_config, "LOG_DIR", tmp_path, raising=False)

    logging_config.setup_logging("INFO")
    logging_config.setup_logging("DEBUG")

    logger = logging.getLogger("labvoyager.tests.logging")
    logger.debug("debug-entry")

    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path.exists()
    assert "debug-entry" in log_path.read_text(encoding="utf-8")


def test_run_log_appends_utc_timestamped_lines(tmp_path):
    path = tmp_path / "logs" / "run.log"
    path.parent.mkdir()
    path.write_text("previous run\n", encoding="utf-8")

    with RunLog(path) as run_log:
        run_log.info("开始部署 %s", "lab.yml")
        run_log.write_output("vcsa-deploy", "Task done\n")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "previous run"
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+0000 \[INFO\] 开始部署 lab.yml$", lines[1])
    assert lines[2].endswith("[INFO] [vcsa-deploy] Task done")


def test_run_logs_do_not_share_handlers(tmp_path):
    first = RunLog(tmp_path / "a.log")
    second = RunLog(tmp_path / "b.log")
    try:
        first.info("only-a")
    finally:
        first.close()
        second.close()

    assert "only-a" in (tmp_path / "a.log").read_text(encoding="utf-8")
    assert "only-a" not in (tmp_path / "b.log").read_text(encoding="utf-8")

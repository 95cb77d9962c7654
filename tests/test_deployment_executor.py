import io

import pytest
import yaml
from rich.console import Console

from labvoyager.common import logging_config
from labvoyager.common.config import load_config
from labvoyager.common.errors import OperatorAbortError
from labvoyager.core.deployment.deployment_executor import (
    RunOptions,
    check_lab,
    execute_run,
    resolve_phase_selection,
)

from tests.fakes import FakeLab, lab_payload


@pytest.fixture(autouse=True)
def _isolated_log_file(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_config, "DEFAULT_LOG_FILE", tmp_path / "labvoyager.log", raising=False)
    monkeypatch.setattr(logging_config, "LOG_DIR", tmp_path, raising=False)


def _write_lab(tmp_path, **kwargs):
    path = tmp_path / "lab.yml"
    path.write_text(yaml.safe_dump(lab_payload(tmp_path, **kwargs)), encoding="utf-8")
    return path


def test_resolve_phase_selection_applies_skip_and_yes():
    cfg = load_config()

    phases = resolve_phase_selection(cfg, RunOptions(assume_yes=True, skip=["group_vms"]))

    assert phases.confirm_deployment is False
    assert phases.group_vms is False
    assert phases.deploy_cluster_nodes is True


def test_execute_run_end_to_end(tmp_path):
    lab_path = _write_lab(tmp_path)
    run_log = tmp_path / "logs" / "run.log"
    fake = FakeLab()
    seen = []

    result = execute_run(
        lab_path,
        RunOptions(run_log_path=run_log),
        services=fake.services(),
        confirmer=lambda summary: seen.append(summary) or True,
        console=Console(file=io.StringIO(), width=160),
    )

    assert result.completed_stages[-2:] == ["disconnect", "report"]
    assert result.run_log == str(run_log)
    assert result.summary["appliance_url"] == "https://vcsa.lab.local/ui/"
    assert len(seen) == 1
    assert result.to_dict()["started_at"] <= result.to_dict()["finished_at"]
    content = run_log.read_text(encoding="utf-8")
    assert "开始部署" in content
    assert "部署结束" in content


def test_execute_run_assume_yes_skips_confirmer(tmp_path):
    lab_path = _write_lab(tmp_path)

    result = execute_run(
        lab_path,
        RunOptions(assume_yes=True, run_log_path=tmp_path / "run.log"),
        services=FakeLab().services(),
        confirmer=pytest.fail,
        console=Console(file=io.StringIO()),
    )

    assert "confirm" not in result.completed_stages


def test_execute_run_records_abort_in_run_log(tmp_path):
    lab_path = _write_lab(tmp_path)
    run_log = tmp_path / "run.log"
    fake = FakeLab()

    with pytest.raises(OperatorAbortError):
        execute_run(
            lab_path,
            RunOptions(run_log_path=run_log),
            services=fake.services(),
            confirmer=lambda summary: False,
            console=Console(file=io.StringIO()),
        )

    assert fake.mutating_calls() == []
    assert "部署终止: [OperatorAbort] stage=confirm" in run_log.read_text(encoding="utf-8")


def test_check_lab_is_offline(tmp_path):
    lab_path = _write_lab(tmp_path, topology="self_hosted", overlay=True)

    report = check_lab(lab_path)

    assert report["topology"] == "self_hosted"
    assert report["software_version"] == "6.5.0"
    assert report["schema"] == "current"
    assert report["node_sizing"]["memory_gb"] == 32
    assert report["nodes"] == ["node-1", "node-2", "node-3"]
    assert report["missing_files"] == []
    assert any("NSX" in w for w in report["warnings"])
    assert report["dependencies"]["yaml"] is True
    assert "httpx" in report["dependencies"]

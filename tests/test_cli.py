import json

import yaml
from typer.testing import CliRunner

from labvoyager.common import logging_config
from labvoyager.common.errors import OperatorAbortError
from labvoyager.core.deployment.stage_manager import Stage
from labvoyager.interfaces.cli import app as cli_module

from tests.fakes import lab_payload

runner = CliRunner()


def _isolate_logs(tmp_path, monkeypatch):
    monkeypatch.setattr(logging_config, "DEFAULT_LOG_FILE", tmp_path / "labvoyager.log", raising=False)
    monkeypatch.setattr(logging_config, "LOG_DIR", tmp_path, raising=False)


def _write_lab(tmp_path):
    path = tmp_path / "lab.yml"
    path.write_text(yaml.safe_dump(lab_payload(tmp_path)), encoding="utf-8")
    return path


def test_stages_list_outputs_ordered_json():
    result = runner.invoke(cli_module.app, ["stages-list"])

    assert result.exit_code == 0
    stages = json.loads(result.output)
    assert [item["name"] for item in stages] == [stage.value for stage in Stage]
    assert stages[0]["order"] == 1


def test_check_command_reports_plan_inputs(tmp_path, monkeypatch):
    _isolate_logs(tmp_path, monkeypatch)
    lab_path = _write_lab(tmp_path)

    result = runner.invoke(cli_module.app, ["check", str(lab_path)])

    assert result.exit_code == 0
    report = json.loads(result.output)
    assert report["schema"] == "current"
    assert report["missing_files"] == []


def test_check_command_fails_on_missing_media(tmp_path, monkeypatch):
    _isolate_logs(tmp_path, monkeypatch)
    lab_path = _write_lab(tmp_path)
    (tmp_path / "Nested_ESXi6.5.ova").unlink()

    result = runner.invoke(cli_module.app, ["check", str(lab_path)])

    assert result.exit_code == 1


def test_run_rejects_unknown_skip_names(tmp_path):
    lab_path = _write_lab(tmp_path)

    result = runner.invoke(cli_module.app, ["run", str(lab_path), "--skip", "group_vms,warp_drive"])

    assert result.exit_code == 1
    assert "warp_drive" in result.output


def test_run_maps_errors_to_exit_codes(tmp_path, monkeypatch):
    lab_path = _write_lab(tmp_path)
    captured = {}

    def fake_execute_run(path, options, console=None):
        captured["options"] = options
        raise OperatorAbortError("操作员取消了部署", stage="confirm")

    monkeypatch.setattr(cli_module, "execute_run", fake_execute_run)

    result = runner.invoke(cli_module.app, ["run", str(lab_path), "--skip", "group_vms", "--debug"])

    assert result.exit_code == 3
    assert "OperatorAbort" in result.output
    assert list(captured["options"].skip) == ["group_vms"]
    assert captured["options"].debug is True

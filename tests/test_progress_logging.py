import logging

import pytest

from labvoyager.core.deployment.progress import (
    PROGRESS_MESSAGES_KEY,
    create_stage_progress_logger,
    record_progress,
    stage_logger_for,
)
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage
from labvoyager.common.logging_config import RunLog


def test_record_progress_normalizes_stage_and_level():
    ctx = RunContext()

    record_progress(ctx, "测试消息", stage=Stage.probe, level="WARNING")

    messages = ctx.extra.get(PROGRESS_MESSAGES_KEY)
    assert messages is not None
    assert len(messages) == 1

    entry = messages[0]
    assert entry["stage"] == Stage.probe.value
    assert entry["level"] == "warning"
    assert entry["message"] == "测试消息"
    assert "at" in entry


def test_record_progress_without_context_is_noop():
    record_progress(None, "ignored", stage=Stage.probe)


def test_stage_progress_logger_syncs_progress_and_logger(caplog: pytest.LogCaptureFixture):
    ctx = RunContext()
    base_logger = logging.getLogger("test.progress")

    with caplog.at_level(logging.INFO, logger="test.progress"):
        stage_logger = create_stage_progress_logger(ctx, Stage.plan.value, logger=base_logger, prefix="[stage]")
        stage_logger.info("同步消息", progress_extra={"foo": "bar"})

    messages = ctx.extra.get(PROGRESS_MESSAGES_KEY)
    assert messages is not None
    assert len(messages) == 1
    entry = messages[0]
    assert entry["level"] == "info"
    assert entry["stage"] == Stage.plan.value
    assert entry.get("extra") == {"foo": "bar"}

    assert any("[stage] 同步消息" in record.message for record in caplog.records)
    assert any("extra={'foo': 'bar'}" in record.message for record in caplog.records)


def test_progress_sink_receives_entries():
    ctx = RunContext()
    received = []
    ctx.extra["progress_log_sink"] = received.append

    create_stage_progress_logger(ctx, Stage.report).warning("注意 %s", "磁盘")

    assert received[0]["message"] == "注意 磁盘"
    assert received[0]["level"] == "warning"


def test_stage_logger_writes_into_run_log(tmp_path):
    run_log = RunLog(tmp_path / "run.log")
    ctx = RunContext(run_log=run_log)
    try:
        stage_logger_for(ctx, Stage.deploy_cluster_nodes).info("导入节点 %s", "node-1")
    finally:
        run_log.close()

    content = (tmp_path / "run.log").read_text(encoding="utf-8")
    assert "[deploy_cluster_nodes] 导入节点 node-1" in content
    assert ctx.extra[PROGRESS_MESSAGES_KEY][0]["stage"] == "deploy_cluster_nodes"

import pytest

from labvoyager.common.errors import ExternalOperationError, OperatorAbortError, ResourceNotFoundError
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.sequencer import ProvisioningSequencer
from labvoyager.core.deployment.stage_manager import Stage, get_stage_info, list_stage_info, load_stage_handlers
from labvoyager.models.deployment_plan import PhaseSelection


def _recorder(calls, name, error=None):
    def handler(ctx):
        calls.append(name)
        if error is not None:
            raise error

    return handler


def test_every_stage_has_a_registered_handler():
    handlers = load_stage_handlers()

    assert set(handlers) == set(Stage)


def test_stage_metadata_order_follows_declaration():
    infos = list_stage_info()

    assert [info.order for info in infos] == list(range(1, len(Stage) + 1))
    assert infos[0].name == "connect"
    assert infos[-1].name == "report"
    assert get_stage_info(Stage.confirm).label


def test_unexpected_exception_is_wrapped_and_session_closed():
    calls = []
    handlers = {
        Stage.connect: _recorder(calls, "connect"),
        Stage.probe: _recorder(calls, "probe", ValueError("bad reply")),
        Stage.plan: _recorder(calls, "plan"),
        Stage.disconnect: _recorder(calls, "disconnect"),
        Stage.report: _recorder(calls, "report"),
    }
    ctx = RunContext()

    with pytest.raises(ExternalOperationError) as excinfo:
        ProvisioningSequencer(ctx, handlers=handlers).run()

    assert excinfo.value.stage == "probe"
    assert "bad reply" in excinfo.value.message
    assert calls == ["connect", "probe", "disconnect"]
    assert ctx.completed_stages == ["connect", "disconnect"]


def test_domain_errors_keep_their_kind_and_gain_stage():
    calls = []
    handlers = {
        Stage.connect: _recorder(calls, "connect", ResourceNotFoundError("no datastore", target="ds")),
        Stage.disconnect: _recorder(calls, "disconnect", RuntimeError("already closed")),
    }

    with pytest.raises(ResourceNotFoundError) as excinfo:
        ProvisioningSequencer(RunContext(), handlers=handlers).run()

    assert excinfo.value.stage == "connect"
    assert excinfo.value.target == "ds"
    assert calls == ["connect", "disconnect"]


def test_abort_runs_disconnect_but_not_report():
    calls = []
    handlers = {
        Stage.confirm: _recorder(calls, "confirm", OperatorAbortError("操作员取消了部署")),
        Stage.disconnect: _recorder(calls, "disconnect"),
        Stage.report: _recorder(calls, "report"),
    }

    with pytest.raises(OperatorAbortError) as excinfo:
        ProvisioningSequencer(RunContext(), handlers=handlers).run()

    assert excinfo.value.stage == "confirm"
    assert excinfo.value.exit_code == 3
    assert calls == ["confirm", "disconnect"]


def test_phase_flags_and_progress_callback():
    calls = []
    events = []
    handlers = {stage: _recorder(calls, stage.value) for stage in Stage}
    ctx = RunContext(phases=PhaseSelection().without("confirm_deployment", "setup_new_domain"))

    completed = ProvisioningSequencer(
        ctx,
        handlers=handlers,
        progress_callback=lambda event, stage, _ctx: events.append((event, stage.value)),
    ).run()

    # 未生成规划时，依赖规划的阶段不会执行
    assert completed == ["connect", "probe", "plan", "deploy_cluster_nodes", "deploy_management_appliance", "disconnect", "report"]
    assert events[:2] == [("start", "connect"), ("complete", "connect")]
    assert len(events) == 2 * len(completed)

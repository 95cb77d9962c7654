import sys

from labvoyager.common.dependency_checks import check_dependencies, is_companion_module_available
from labvoyager.core.deployment.runtime_context import DEFAULT_OVERLAY_MODULE


def test_default_companion_module_is_available():
    assert is_companion_module_available(DEFAULT_OVERLAY_MODULE) is True


def test_companion_requires_overlay_client_entry_point():
    assert is_companion_module_available("json") is False
    assert is_companion_module_available("labvoyager.no_such_module") is False
    assert is_companion_module_available("") is False


def test_default_companion_unavailable_without_http_client(monkeypatch):
    monkeypatch.delitem(sys.modules, DEFAULT_OVERLAY_MODULE, raising=False)
    monkeypatch.setitem(sys.modules, "httpx", None)

    assert is_companion_module_available(DEFAULT_OVERLAY_MODULE) is False


def test_check_dependencies_reports_optional_packages():
    status = check_dependencies(optional=True)

    assert status["pyVmomi"] is True
    assert "httpx" in status
    assert "httpx" not in check_dependencies()

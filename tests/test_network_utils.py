import pytest

from labvoyager.common.errors import ExternalOperationError
from labvoyager.common.network_utils import synthesize_host_address, wait_until_reachable


def test_wait_until_reachable_polls_at_fixed_interval():
    answers = iter([False, False, True])
    sleeps = []

    attempts = wait_until_reachable(
        "10.0.0.11",
        interval=60,
        timeout=1800,
        probe=lambda host: next(answers),
        sleep=sleeps.append,
    )

    assert attempts == 3
    assert sleeps == [60, 60]


def test_wait_until_reachable_is_bounded():
    sleeps = []

    with pytest.raises(ExternalOperationError) as excinfo:
        wait_until_reachable("10.0.0.11", interval=60, timeout=120, probe=lambda host: False, sleep=sleeps.append)

    assert excinfo.value.target == "10.0.0.11"
    assert "共探测 3 次" in excinfo.value.message
    assert sleeps == [60, 60]


@pytest.mark.parametrize(
    "subnet, host_ip, expected",
    [
        ("172.16.30.0/24", "10.0.0.11", "172.16.30.11"),
        ("192.168.5.0/24", "10.20.30.254", "192.168.5.254"),
        ("172.16.30.7/24", "10.0.0.1", "172.16.30.1"),
    ],
)
def test_synthesize_host_address(subnet, host_ip, expected):
    assert synthesize_host_address(subnet, host_ip) == expected

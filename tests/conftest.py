import pytest
from workflow_utils import make_workflow

from portsched.workflow import Host


@pytest.fixture(scope="function")
def diamond():
    # A=0 -> B=1, A=0 -> C=2
    return make_workflow([(0, 1), (0, 2)])


@pytest.fixture(scope="function")
def single_host():
    return [Host("vm0", speed=1000, bandwidth=10 ** 6)]


@pytest.fixture(scope="function")
def hosts():
    return [
        Host("vm0", speed=10, bandwidth=100),
        Host("vm1", speed=40, bandwidth=300, cores=2),
        Host("vm2", speed=40, bandwidth=200, cores=4),
    ]

import pytest

from portsched.scheduling import schedule_pass
from portsched.workflow import Host, HostState, Workflow


def ranked_tasks(ranks, length=100):
    workflow = Workflow()
    for task_id, rank in enumerate(ranks):
        workflow.add_task(task_id, length).rank = rank
    return workflow


def test_lowest_rank_first():
    workflow = ranked_tasks([2, 0, 1])
    hosts = [Host("a", 10, 1), Host("b", 10, 1)]
    bindings = schedule_pass(list(workflow), hosts, 0.)
    assert [(task.id, host.name) for task, host in bindings] == [(1, "a"), (2, "b")]
    assert workflow[1].host == "a" and workflow[1].scheduled
    assert workflow[0].host is None
    assert all(host.state == HostState.BUSY for host in hosts)


def test_earliest_finish_time_host():
    workflow = ranked_tasks([0, 1, 2])
    hosts = [Host("slow", 1, 1), Host("fast", 50, 1), Host("medium", 10, 1)]
    bindings = schedule_pass(list(workflow), hosts, 5.)
    assert [host.name for _, host in bindings] == ["fast", "medium", "slow"]


def test_host_ties_keep_host_order():
    workflow = ranked_tasks([0])
    hosts = [Host("a", 10, 1), Host("b", 20, 1), Host("c", 20, 1)]
    (task, host), = schedule_pass(list(workflow), hosts, 0.)
    assert host.name == "b"


def test_task_ties_keep_input_order():
    workflow = ranked_tasks([1, 1, 1])
    hosts = [Host("a", 10, 1)]
    (task, _), = schedule_pass([workflow[2], workflow[0], workflow[1]], hosts, 0.)
    assert task.id == 2


def test_busy_hosts_are_skipped():
    workflow = ranked_tasks([0, 1])
    hosts = [Host("fast", 100, 1), Host("slow", 1, 1)]
    hosts[0].state = HostState.BUSY
    bindings = schedule_pass(list(workflow), hosts, 0.)
    assert [(task.id, host.name) for task, host in bindings] == [(0, "slow")]


def test_repeated_pass_is_noop():
    workflow = ranked_tasks([0, 1, 2])
    hosts = [Host("a", 10, 1), Host("b", 10, 1)]
    assert len(schedule_pass(list(workflow), hosts, 0.)) == 2
    assert schedule_pass(list(workflow), hosts, 0.) == []
    assert workflow[2].host is None


def test_scheduled_tasks_are_not_dispatched_again():
    workflow = ranked_tasks([0, 1])
    hosts = [Host("a", 10, 1)]
    schedule_pass([workflow[0]], hosts, 0.)
    hosts[0].state = HostState.IDLE
    bindings = schedule_pass([workflow[0], workflow[1]], hosts, 1.)
    assert [task.id for task, _ in bindings] == [1]
    assert workflow[0].host == "a"


def test_duplicate_ready_tasks():
    workflow = ranked_tasks([0])
    hosts = [Host("a", 10, 1), Host("b", 10, 1)]
    bindings = schedule_pass([workflow[0], workflow[0]], hosts, 0.)
    assert len(bindings) == 1
    assert hosts[1].state == HostState.IDLE


@pytest.mark.parametrize("ready, hosts", [([], [Host("a", 1, 1)]), (None, []), ([], [])])
def test_empty_inputs(ready, hosts):
    if ready is None:
        ready = list(ranked_tasks([0, 1]))
    assert schedule_pass(ready, hosts, 0.) == []
    assert all(task.host is None for task in ready)


def test_unranked_tasks_go_last():
    workflow = ranked_tasks([float("inf"), 3])
    hosts = [Host("a", 10, 1)]
    (task, _), = schedule_pass(list(workflow), hosts, 0.)
    assert task.id == 1

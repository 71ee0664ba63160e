import random

from portsched.workflow import FileType, Workflow


def make_workflow(edges, length=1000, output_size=10 ** 6, count=None):
    """Build a workflow with identical tasks 0..count-1 connected by edges."""
    if count is None:
        count = max([max(edge) for edge in edges] or [-1]) + 1
    workflow = Workflow()
    for task_id in range(count):
        workflow.add_task(task_id, length)
        if output_size:
            workflow.add_file(task_id, f"out_{task_id}", output_size)
    for parent, child in edges:
        workflow.add_dependency(parent, child)
    return workflow


def random_workflow(seed, count=12, density=0.3):
    """Random DAG, edges always point from a lower to a higher id."""
    rng = random.Random(seed)
    workflow = Workflow()
    for task_id in range(count):
        workflow.add_task(task_id, rng.randint(1, 5000), cores=rng.choice([1, 1, 2]))
        workflow.add_file(task_id, f"in_{task_id}", rng.randint(0, 10 ** 6), FileType.INPUT)
        workflow.add_file(task_id, f"out_{task_id}", rng.choice([0, rng.randint(1, 10 ** 6)]))
    for child in range(count):
        for parent in range(child):
            if rng.random() < density:
                workflow.add_dependency(parent, child)
    return workflow

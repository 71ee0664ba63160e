# This file is part of portsched, a Python library for port-contention aware workflow scheduling.
#
# Copyright 2015-2016 Alexey Nazarenko and contributors
#
# This library is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This library is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# along with this library.  If not, see <http://www.gnu.org/licenses/>.
#

import bisect
import collections

import numpy

from .workflow import HostState


BITS_PER_BYTE = 8.
# used when no host has enough cores for a task
UNKNOWN_COMP_TIME = 1.
# gap between parent output transfer end and child readiness
READY_DELAY = 1.
MAX_PERMUTATIONS = 6
EPSILON = 1e-6


class MinSelector(object):
  """
  Keep the value with the smallest key seen so far.

  Ties are resolved in favor of the first value. Keys are usually tuples,
  so additional sort conditions can be appended to make selection stable.
  """

  def __init__(self):
    self.key = None
    self.value = None

  def update(self, key, value):
    if self.key is None or key < self.key:
      self.key = key
      self.value = value


class PlatformModel(object):
  """
  Platform linear model used for offline planning.

  Disregards network topology: every transfer goes through the single client port
  at the mean host bandwidth.
  """

  def __init__(self, hosts):
    hosts = list(hosts)
    self._speed = numpy.array([host.speed for host in hosts], dtype=float)
    self._bandwidth = numpy.array([host.bandwidth for host in hosts], dtype=float)
    self._cores = numpy.array([host.cores for host in hosts], dtype=int)
    self._mean_speed = self._speed.mean() if hosts else numpy.nan
    self._mean_bandwidth = max(self._bandwidth.mean(), 1.) if hosts else 1.

  @property
  def host_count(self):
    return len(self._speed)

  @property
  def speed(self):
    """
    Get hosts speed as a vector.
    """
    return self._speed

  @property
  def mean_speed(self):
    """
    Get mean host speed in a platform.

    NaN for an empty platform.
    """
    return self._mean_speed

  @property
  def mean_bandwidth(self):
    """
    Get mean host bandwidth in bits per second.

    Note:
      Never less than 1, so it is always safe to divide by it.
    """
    return self._mean_bandwidth

  def eet(self, task, host):
    """
    Calculate task eet on a given host.
    """
    return task.length / host.speed

  def is_feasible(self, task):
    """
    Check that at least one host has enough cores for a task.
    """
    return bool((self._cores >= task.cores).any())

  def avg_comp_time(self, task):
    """
    Mean task execution time over hosts having enough cores.

    Returns UNKNOWN_COMP_TIME if there are no such hosts.
    """
    eligible = self._cores >= task.cores
    if not eligible.any():
      return UNKNOWN_COMP_TIME
    return float((task.length / self._speed[eligible]).mean())

  def transfer_time(self, task):
    """
    Time to push task output files through the client port.

    Same value is used for sending and receiving.
    """
    return task.output_size * BITS_PER_BYTE / self._mean_bandwidth

  def task_tau(self, task):
    return 2 * self.transfer_time(task) + self.avg_comp_time(task)


class OverlapBuffer(object):
  """
  Reservations of the single client port.

  Layout: a list [(start, end)...] sorted by start.
  """

  def __init__(self, intervals=None):
    self._intervals = sorted(intervals) if intervals else []

  def insert_interval(self, start, end):
    """
    Reserve [start, end).

    Note:
      Doesn't check for collisions, the caller is expected to use
      find_earliest_gap_after first.
    """
    if end < start:
      raise ValueError("interval end {} precedes its start {}".format(end, start))
    bisect.insort(self._intervals, (start, end))

  def find_earliest_gap_after(self, after, duration):
    """
    Find the earliest time >= after where the port stays free for duration.
    """
    candidate = after
    for start, end in self._intervals:
      if candidate + duration <= start:
        return candidate
      candidate = max(candidate, end)
    return candidate

  def max_overlap(self):
    """
    Largest overlap between any two reservations, 0 if there is none.
    """
    result = 0.
    for idx, (_, end) in enumerate(self._intervals):
      for next_start, next_end in self._intervals[idx + 1:]:
        if next_start >= end:
          break
        result = max(result, min(end, next_end) - next_start)
    return result

  def copy(self):
    # tuples are immutable, copying the list is enough
    return OverlapBuffer(list(self._intervals))

  @property
  def intervals(self):
    return tuple(self._intervals)

  def __len__(self):
    return len(self._intervals)


class PlannerState(object):
  """
  Stores the offline planning state.

  Task costs are evaluated once on construction. Other fields are filled
  during presimulation:

    *buffer* - committed port reservations

    *send_start*, *receive_end* - {task_id: time} for presimulated tasks

    *scheduled* - set of presimulated task ids

    *order* - task ids in presimulation order
  """

  def __init__(self, workflow, platform_model, epsilon=EPSILON):
    if epsilon < 0:
      raise ValueError("epsilon must be non-negative, got {}".format(epsilon))
    self.workflow = workflow
    self.platform_model = platform_model
    self.epsilon = epsilon
    self.comp_time = {task.id: platform_model.avg_comp_time(task) for task in workflow}
    self.transfer_time = {task.id: platform_model.transfer_time(task) for task in workflow}
    self.buffer = OverlapBuffer()
    self.send_start = {}
    self.receive_end = {}
    self.scheduled = set()
    self.order = []

  def task_tau(self, task_id):
    return 2 * self.transfer_time[task_id] + self.comp_time[task_id]


def enumerate_paths(workflow):
  """
  List all root to leaf paths of a workflow in depth first order.

  A task already present in the current path is not entered again, so a cyclic
  input terminates (with meaningless paths).

  Returns:
    a list of paths, each path is a list of task ids
  """
  paths = []
  for root in workflow.roots():
    path = []
    on_path = set()
    stack = [iter([root.id])]
    while stack:
      task_id = next(stack[-1], None)
      if task_id is None:
        stack.pop()
        if path:
          on_path.discard(path.pop())
        continue
      if task_id in on_path:
        continue
      path.append(task_id)
      on_path.add(task_id)
      children = workflow[task_id].children
      if not children:
        paths.append(list(path))
      stack.append(iter(children))
  return paths


def path_tau(path, state):
  return sum(state.task_tau(task_id) for task_id in path)


def rank_paths(paths, state):
  """
  Sort paths by decreasing aggregate cost, keeping enumeration order for ties.
  """
  return sorted(paths, key=lambda path: path_tau(path, state), reverse=True)


def reserve_port(task_id, state, buffer, receive_end):
  """
  Presimulate a single task against a given port buffer.

  Args:
    task_id: task to place
    state: PlannerState providing task costs
    buffer: OverlapBuffer to search and update
    receive_end: {task_id: time} lookup for parents, missing parents are treated as finished at 0

  The send leg is inserted before the receive gap is searched, so with
  computation shorter than epsilon the receive leg starts up to epsilon later
  than a search of both gaps on the untouched buffer would give.

  Returns:
    a tuple (send_start, receive_end)
  """
  epsilon = state.epsilon
  duration = state.transfer_time[task_id]
  ready = max([receive_end.get(parent, 0.) + READY_DELAY for parent in state.workflow[task_id].parents] or [0.])
  send_start = buffer.find_earliest_gap_after(ready, duration)
  finish = send_start + duration + state.comp_time[task_id]
  # receive leg overlaps the send leg by epsilon at most
  buffer.insert_interval(send_start - epsilon, send_start + duration + epsilon)
  receive_start = buffer.find_earliest_gap_after(finish, duration)
  task_receive_end = receive_start + duration
  buffer.insert_interval(receive_start - epsilon, task_receive_end + epsilon)
  return send_start, task_receive_end


def presimulate(task_id, state):
  """
  Commit a task, and all its unscheduled ancestors first, to the planner state.

  Ancestors are walked in post order with an explicit stack. Tasks already
  scheduled are left untouched.
  """
  if task_id in state.scheduled:
    return
  workflow = state.workflow
  stack = [(task_id, iter(workflow[task_id].parents))]
  pending = {task_id}
  while stack:
    current, parents = stack[-1]
    for parent in parents:
      if parent not in state.scheduled and parent not in pending:
        pending.add(parent)
        stack.append((parent, iter(workflow[parent].parents)))
        break
    else:
      stack.pop()
      pending.discard(current)
      send_start, receive_end = reserve_port(current, state, state.buffer, state.receive_end)
      state.send_start[current] = send_start
      state.receive_end[current] = receive_end
      state.scheduled.add(current)
      state.order.append(current)


def simulate_order(order, state):
  """
  Evaluate presimulation of tasks in a given order without touching the state.

  Returns:
    maximum receive end among simulated tasks (0 for an empty order)
  """
  buffer = state.buffer.copy()
  scratch = {}
  receive_end = collections.ChainMap(scratch, state.receive_end)
  for task_id in order:
    _, receive_end[task_id] = reserve_port(task_id, state, buffer, receive_end)
  return max(scratch.values()) if scratch else 0.


def swap_permutations(items, start=0):
  """
  Generate all orderings of a list by swapping each element into place.

  Orderings come in swap order (for 3 items: 012, 021, 102, 120, 210, 201),
  not in lexicographic order. The list is restored after generation.
  """
  if start == len(items):
    yield tuple(items)
    return
  for idx in range(start, len(items)):
    items[start], items[idx] = items[idx], items[start]
    yield from swap_permutations(items, start + 1)
    items[start], items[idx] = items[idx], items[start]


def arrange_parallel_parents(parents, state, max_permutations=MAX_PERMUTATIONS):
  """
  Choose presimulation order for unscheduled parents of a common child.

  Up to max_permutations parents all orders are evaluated and the one
  with the smallest simulated makespan is returned (first one in
  swap_permutations order on ties).
  Larger sets are sorted by decreasing task cost instead.
  """
  parents = list(parents)
  if len(parents) > max_permutations:
    return sorted(parents, key=state.task_tau, reverse=True)
  current_min = MinSelector()
  for order in swap_permutations(list(parents)):
    current_min.update((simulate_order(order, state),), order)
  return list(current_min.value)


class TaskPlan(collections.namedtuple("TaskPlan", ["send_start", "receive_end", "rank"])):
  __slots__ = ()


class Plan(object):
  """
  Offline planning result.

  Layout: {task_id: TaskPlan(send_start, receive_end, rank)}, ranks are dense
  and unique, ordered by send start and then by task id.
  """

  def __init__(self, state, infeasible=()):
    ordered = sorted(state.send_start, key=lambda task_id: (state.send_start[task_id], task_id))
    self._entries = {
      task_id: TaskPlan(state.send_start[task_id], state.receive_end[task_id], rank)
      for (rank, task_id) in enumerate(ordered)
    }
    self._priority_list = ordered
    self._order = list(state.order)
    self._buffer = state.buffer
    self._infeasible = frozenset(infeasible)

  def __getitem__(self, task_id):
    return self._entries[task_id]

  def __contains__(self, task_id):
    return task_id in self._entries

  def __len__(self):
    return len(self._entries)

  def items(self):
    return self._entries.items()

  def send_start(self, task_id):
    return self._entries[task_id].send_start

  def receive_end(self, task_id):
    return self._entries[task_id].receive_end

  def rank(self, task_id):
    return self._entries[task_id].rank

  def priority_list(self):
    """
    Task ids ordered by rank.
    """
    return list(self._priority_list)

  @property
  def order(self):
    """
    Task ids in presimulation order.
    """
    return list(self._order)

  @property
  def buffer(self):
    """
    Copy of the committed port reservations.
    """
    return self._buffer.copy()

  @property
  def infeasible(self):
    """
    Ids of tasks no host has enough cores for.

    Their computation time is estimated as UNKNOWN_COMP_TIME.
    """
    return self._infeasible

  @property
  def makespan(self):
    """
    Presimulated receive end of the last task, 0 for an empty workflow.
    """
    return max([entry.receive_end for entry in self._entries.values()] or [0.])

  def apply(self, workflow):
    """
    Store planned times and ranks in workflow tasks.
    """
    for task_id, entry in self._entries.items():
      task = workflow[task_id]
      if numpy.isfinite(task.rank):
        raise Exception("task {} is already planned".format(task_id))
      task.send_start, task.receive_end, task.rank = entry


def plan(workflow, hosts, max_permutations=MAX_PERMUTATIONS, epsilon=EPSILON):
  """
  Build an offline plan for a workflow contending for a single client port.

  Paths are processed in decreasing cost order. Before each task its unscheduled
  parents are presimulated, in the best order found by arrange_parallel_parents
  if there are several of them. Tasks unreachable from paths are presimulated last.

  Args:
    workflow: Workflow instance, expected to be acyclic
    hosts: list of Host instances, used read-only
    max_permutations: the largest parent set ordered by exhaustive search
    epsilon: padding added to both sides of every port reservation

  Returns:
    a Plan instance
  """
  if max_permutations < 0:
    raise ValueError("max_permutations must be non-negative, got {}".format(max_permutations))
  workflow.validate()
  platform_model = PlatformModel(hosts)
  state = PlannerState(workflow, platform_model, epsilon)

  for path in rank_paths(enumerate_paths(workflow), state):
    for task_id in path:
      parents = [parent for parent in workflow[task_id].parents if parent not in state.scheduled]
      if len(parents) == 1:
        presimulate(parents[0], state)
      elif len(parents) > 1:
        for parent in arrange_parallel_parents(parents, state, max_permutations):
          presimulate(parent, state)
      presimulate(task_id, state)

  for task in workflow:
    presimulate(task.id, state)

  infeasible = [task.id for task in workflow if not platform_model.is_feasible(task)]
  return Plan(state, infeasible)


def schedule_pass(ready_tasks, hosts, now):
  """
  Bind ready tasks to idle hosts in priority order.

  Each step takes the unscheduled task with the lowest rank (first one on ties)
  and the idle host with the earliest finish time (first one on ties). The pass
  stops when tasks or idle hosts run out.

  Args:
    ready_tasks: tasks whose dependencies are satisfied
    hosts: list of Host instances, state of the chosen ones is set to BUSY
    now: current simulation time

  Returns:
    a list of (task, host) bindings made
  """
  bindings = []
  pending = [task for task in ready_tasks if not task.scheduled]
  for _ in range(len(pending)):
    candidates = [task for task in pending if not task.scheduled]
    if not candidates:
      break
    task = min(candidates, key=lambda t: t.rank)
    current_min = MinSelector()
    for host in hosts:
      if host.state != HostState.IDLE:
        continue
      current_min.update((now + task.length / host.speed,), host)
    if current_min.value is None:
      break
    host = current_min.value
    host.state = HostState.BUSY
    task.host = host.name
    bindings.append((task, host))
  return bindings

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

import math

from enum import Enum

import networkx


class FileType(Enum):
  INPUT = 1
  OUTPUT = 2


class HostState(Enum):
  """
  Host occupancy, as seen by the runtime scheduler.

  - IDLE: host can accept a task.

  - BUSY: host is executing a task, the surrounding simulation flips it back
    to IDLE when the task completes.
  """
  IDLE = 1
  BUSY = 2


class FileItem(object):
  """
  Single file transfer attached to a task.

  Size is given in bytes.
  """

  def __init__(self, name, size, kind):
    if size < 0:
      raise ValueError("file size must be non-negative, got {}".format(size))
    self.name = name
    self.size = size
    self.kind = FileType(kind)

  def __repr__(self):
    return "FileItem({!r}, {}, {})".format(self.name, self.size, self.kind.name)


class Task(object):
  """
  Workflow task.

  Parents and children are stored as lists of task ids, the owning :class:`Workflow`
  resolves them. Planner fields are filled once by the offline planner:

    *send_start* - presimulated start of the task input transfer

    *receive_end* - presimulated end of the task output transfer

    *rank* - dense priority rank, 0 is the highest priority
  """

  def __init__(self, id, length, cores=1, name=None, kind=None):
    self.id = id
    self.length = length
    self.cores = cores
    self.name = name if name is not None else "task_{}".format(id)
    self.kind = kind
    self.parents = []
    self.children = []
    self.files = []
    self.send_start = math.nan
    self.receive_end = math.nan
    self.rank = math.inf
    self.host = None

  @property
  def input_files(self):
    return [f for f in self.files if f.kind == FileType.INPUT]

  @property
  def output_files(self):
    return [f for f in self.files if f.kind == FileType.OUTPUT]

  @property
  def output_size(self):
    """
    Total size of output files in bytes.
    """
    return sum(f.size for f in self.output_files)

  @property
  def scheduled(self):
    """
    True once the runtime scheduler bound the task to a host.
    """
    return self.host is not None

  def __repr__(self):
    return "Task({}, {!r})".format(self.id, self.name)


class Host(object):
  """
  Compute resource.

  Speed is measured in task length units per second, bandwidth in bits per second.
  """

  def __init__(self, name, speed, bandwidth, cores=1):
    if speed <= 0:
      raise ValueError("host '{}' speed must be positive, got {}".format(name, speed))
    if bandwidth < 0:
      raise ValueError("host '{}' bandwidth must be non-negative, got {}".format(name, bandwidth))
    self.name = name
    self.speed = speed
    self.bandwidth = bandwidth
    self.cores = cores
    self.state = HostState.IDLE

  @property
  def idle(self):
    return self.state == HostState.IDLE

  def __repr__(self):
    return "Host({!r}, {})".format(self.name, self.state.name)


class Workflow(object):
  """
  Task table addressed by task id.

  Dependencies are registered through :meth:`add_dependency`, which keeps
  parent and child lists mirrored. Iteration follows task insertion order.
  """

  def __init__(self):
    self._tasks = {}

  def add_task(self, id, length, cores=1, name=None, kind=None):
    if id in self._tasks:
      raise ValueError("duplicate task id {}".format(id))
    task = Task(id, length, cores=cores, name=name, kind=kind)
    self._tasks[id] = task
    return task

  def add_dependency(self, parent, child):
    if parent == child:
      raise ValueError("task {} cannot depend on itself".format(parent))
    for task_id in (parent, child):
      if task_id not in self._tasks:
        raise ValueError("unknown task id {}".format(task_id))
    if child in self._tasks[parent].children:
      return
    self._tasks[parent].children.append(child)
    self._tasks[child].parents.append(parent)

  def add_file(self, task_id, name, size, kind=FileType.OUTPUT):
    if task_id not in self._tasks:
      raise ValueError("unknown task id {}".format(task_id))
    item = FileItem(name, size, kind)
    self._tasks[task_id].files.append(item)
    return item

  def __getitem__(self, task_id):
    return self._tasks[task_id]

  def __contains__(self, task_id):
    return task_id in self._tasks

  def __iter__(self):
    return iter(self._tasks.values())

  def __len__(self):
    return len(self._tasks)

  @property
  def ids(self):
    return list(self._tasks)

  def roots(self):
    return [task for task in self if not task.parents]

  def leaves(self):
    return [task for task in self if not task.children]

  def validate(self):
    """
    Check that every edge references a known task and is listed on both ends.

    Acyclicity is not checked here, see :meth:`is_acyclic`.
    """
    for task in self:
      for parent in task.parents:
        if parent not in self._tasks:
          raise ValueError("task {} references unknown parent {}".format(task.id, parent))
        if task.id not in self._tasks[parent].children:
          raise ValueError("task {} lists {} as parent, but not vice versa".format(task.id, parent))
      for child in task.children:
        if child not in self._tasks:
          raise ValueError("task {} references unknown child {}".format(task.id, child))
        if task.id not in self._tasks[child].parents:
          raise ValueError("task {} lists {} as child, but not vice versa".format(task.id, child))

  def get_task_graph(self):
    """
    Export the workflow as networkx.DiGraph.

    Nodes are task ids, edge "weight" is the amount of bytes the parent sends.
    """
    graph = networkx.DiGraph()
    for task in self:
      graph.add_node(task.id, task=task)
    for task in self:
      for child in task.children:
        graph.add_edge(task.id, child, weight=task.output_size)
    return graph

  def is_acyclic(self):
    return networkx.is_directed_acyclic_graph(self.get_task_graph())

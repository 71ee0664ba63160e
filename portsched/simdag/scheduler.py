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

import abc
import logging
import time

from .. import scheduling
from ..workflow import HostState


class Scheduler(metaclass=abc.ABCMeta):
  """
  Base class for all scheduling algorithms.

  Defines scheduler public interface and provides (very few) useful methods for
  actual schedulers:

    *self._log* - Logger object (see logging module documentation)

    *self._workflow*, *self._hosts* - snapshot provided by the surrounding simulation
  """

  def __init__(self, workflow, hosts):
    """
    Initialize scheduler instance.

    Args:
      workflow: a :class:`portsched.workflow.Workflow` object
      hosts: list of :class:`portsched.workflow.Host` objects
    """
    self._workflow = workflow
    self._hosts = list(hosts)
    self._log = logging.getLogger(type(self).__name__)

  @abc.abstractmethod
  def run(self, *args, **kwargs):
    raise NotImplementedError()

  @property
  @abc.abstractmethod
  def scheduler_time(self):
    """
    Wall clock time spent scheduling.
    """
    raise NotImplementedError()

  @property
  def expected_makespan(self):
    """
    Algorithm's makespan prediction. Can return None if algorithms didn't/cannot provide it.
    """
    return None


class StaticScheduler(Scheduler):
  """
  Base class for offline planning algorithms.

  Runs once, before the workflow execution, and stores the plan in workflow tasks.
  """

  def __init__(self, workflow, hosts):
    super(StaticScheduler, self).__init__(workflow, hosts)
    self.__scheduler_time = -1.
    self.__plan = None

  def run(self):
    start_time = time.time()

    plan = self.get_plan(self._workflow, self._hosts)

    self.__scheduler_time = time.time() - start_time
    self._log.debug("Scheduling time: %f", self.__scheduler_time)
    if not isinstance(plan, scheduling.Plan):
      raise Exception("'get_plan' must return a Plan")
    unplanned = [task.name for task in self._workflow if task.id not in plan]
    if unplanned:
      raise Exception("some tasks are left unplanned by static algorithm: {}".format(unplanned))

    plan.apply(self._workflow)
    self.__plan = plan
    self._log.debug("Expected makespan: %f", plan.makespan)
    return plan

  @abc.abstractmethod
  def get_plan(self, workflow, hosts):
    """
    Abstract method that need to be overriden in scheduler implementation.

    Args:
      workflow: a :class:`portsched.workflow.Workflow` object
      hosts: list of hosts, must not be modified

    Returns:
      a :class:`portsched.scheduling.Plan` covering every workflow task
    """
    raise NotImplementedError()

  def priority_list(self):
    """
    Workflow tasks ordered by planned rank.

    Empty before run.
    """
    if self.__plan is None:
      return []
    return [self._workflow[task_id] for task_id in self.__plan.priority_list()]

  @property
  def plan(self):
    return self.__plan

  @property
  def scheduler_time(self):
    return self.__scheduler_time

  @property
  def expected_makespan(self):
    return self.__plan.makespan if self.__plan is not None else None


class DynamicScheduler(Scheduler):
  """
  Base class for runtime scheduling algorithms.

  The surrounding simulation calls run whenever tasks become ready or hosts become idle.
  """

  def __init__(self, workflow, hosts):
    super(DynamicScheduler, self).__init__(workflow, hosts)
    self.__scheduler_time = 0.
    self.__prepared = False

  def run(self, ready_tasks, now):
    """
    Perform a single scheduling pass.

    Args:
      ready_tasks: tasks with satisfied dependencies
      now: current simulation time

    Returns:
      a list of (task, host) bindings made in this pass
    """
    if not self.__prepared:
      self.prepare(self._workflow)
      self.__prepared = True
    start_time = time.time()
    bindings = self.schedule(list(ready_tasks), now)
    self.__scheduler_time += time.time() - start_time
    for task, host in bindings:
      self._log.debug("%.3f: %s -> %s", now, task.name, host.name)
    return bindings

  def release(self, host):
    """
    Mark a host idle again once its task is done.
    """
    host.state = HostState.IDLE

  @property
  def hosts(self):
    return self._hosts

  @abc.abstractmethod
  def prepare(self, workflow):
    """
    Abstract method that need to be overriden in scheduler implementation.

    Executed once before the first pass. Can be used to check the workflow annotations.

    Args:
      workflow: a :class:`portsched.workflow.Workflow` object
    """
    raise NotImplementedError()

  @abc.abstractmethod
  def schedule(self, ready_tasks, now):
    """
    Abstract method that need to be overriden in scheduler implementation.

    Args:
      ready_tasks: a list of ready tasks
      now: current simulation time

    Returns:
      a list of (task, host) bindings
    """
    raise NotImplementedError()

  @property
  def scheduler_time(self):
    return self.__scheduler_time

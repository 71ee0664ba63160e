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

import os

from .. import scheduler
from ... import scheduling


class PortAware(scheduler.StaticScheduler):
  """
  Offline planner for workflows whose transfers share a single client port.

  Every task sends its inputs through the port, computes and receives its outputs
  back through the same port. The planner presimulates this on a port timeline:

  1. Enumerate root to leaf paths and sort them by decreasing cost

       tau(path) = sum over tasks of (2 * transfer_time + mean computation time)

  2. Walk the paths, presimulating each task after its parents. When a task has
     several unscheduled parents, all their orders are evaluated (up to
     max_permutations parents) and the one finishing the last parent earliest wins.
     Bigger parent sets are simply ordered by decreasing cost.

  3. Rank tasks by presimulated send start. The rank is the task priority
     for :class:`portsched.simdag.algorithms.RankedEFT`.

  Bound and padding are configured via PORTSCHED_MAX_PERMUTATIONS and PORTSCHED_EPSILON
  environment variables, explicit arguments take precedence.
  """

  def __init__(self, workflow, hosts, max_permutations=None, epsilon=None):
    super(PortAware, self).__init__(workflow, hosts)
    if max_permutations is None:
      max_permutations = int(os.environ.get("PORTSCHED_MAX_PERMUTATIONS", scheduling.MAX_PERMUTATIONS))
    if epsilon is None:
      epsilon = float(os.environ.get("PORTSCHED_EPSILON", scheduling.EPSILON))
    self._max_permutations = max_permutations
    self._epsilon = epsilon

  @property
  def max_permutations(self):
    return self._max_permutations

  @property
  def epsilon(self):
    return self._epsilon

  def get_plan(self, workflow, hosts):
    """
    Overriden.
    """
    if not workflow.is_acyclic():
      self._log.warning("workflow has dependency cycles, plan quality is undefined")
    plan = scheduling.plan(workflow, hosts, self._max_permutations, self._epsilon)
    if plan.infeasible:
      self._log.warning("no host has enough cores for tasks %s, using default computation time",
                        sorted(workflow[task_id].name for task_id in plan.infeasible))
    self._log.debug("Presimulation order: %s", plan.order)
    self._log.debug("Rank\tTask\tSendStart\tReceiveEnd\tParents")
    for task_id in plan.priority_list():
      task = workflow[task_id]
      entry = plan[task_id]
      self._log.debug("%d\t%s\t%.2f\t%.2f\t%s", entry.rank, task.name, entry.send_start, entry.receive_end,
                      ",".join(str(parent) for parent in task.parents) or "None")
    return plan

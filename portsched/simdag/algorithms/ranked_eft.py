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

import numpy

from .. import scheduler
from ... import scheduling


class RankedEFT(scheduler.DynamicScheduler):
    """
    List scheduler driven by offline ranks.

    Dynamically schedules the ready task with the lowest rank on the idle host
    with the earliest finish time, until tasks or idle hosts run out.
    Dependencies are not checked, only truly ready tasks are expected.
    """

    def __init__(self, workflow, hosts):
        super(RankedEFT, self).__init__(workflow, hosts)
        self.bindings_count = 0

    def prepare(self, workflow):
        unranked = [task.name for task in workflow if not numpy.isfinite(task.rank)]
        if unranked:
            self._log.warning("tasks %s have no rank and will be scheduled last", unranked)
        self.bindings_count = 0

    def schedule(self, ready_tasks, now):
        bindings = scheduling.schedule_pass(ready_tasks, self.hosts, now)
        self.bindings_count += len(bindings)
        return bindings

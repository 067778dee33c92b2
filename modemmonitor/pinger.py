"""pinger.py

Copyright 2021 David Jagoe.

    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License, or
    (at your option) any later version.

    This program is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
    GNU General Public License for more details.

    You should have received a copy of the GNU General Public License
    along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""

import logging
import math
import subprocess

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from subprocess import DEVNULL


log = logging.getLogger(__name__)


def can_ping(address, timeout, interface=None):
    # ping's -W only takes whole seconds on older iputils.
    wait = max(1, math.ceil(timeout))
    command = ["ping", "-c", "1", "-W", str(wait)]
    if interface:
        command += ["-I", interface]
    command.append(address)
    try:
        return subprocess.call(command, stdout=DEVNULL, stderr=DEVNULL, timeout=wait + 2) == 0
    except subprocess.TimeoutExpired:
        log.debug("Ping to {0} timed out.".format(address))
        return False
    except OSError as err:
        log.error("Unable to run ping: {0}".format(err))
        return False


class Pinger:
    """Pings all targets at once; a round succeeds if any of them answers."""

    def __init__(self, targets, timeout=timedelta(seconds=3), interface=None):
        if not targets:
            raise ValueError("at least one ping target is required")
        self._targets = list(targets)
        self._timeout = timeout.total_seconds()
        self._interface = interface

    def ping_all(self, shutdown=None):
        if shutdown is not None and shutdown.is_set():
            return False

        with ThreadPoolExecutor(max_workers=len(self._targets)) as pool:
            results = list(pool.map(
                lambda target: can_ping(target, self._timeout, self._interface),
                self._targets))

        for target, alive in zip(self._targets, results):
            log.debug("Ping {0}: {1}".format(target, "ok" if alive else "no reply"))
        return any(results)

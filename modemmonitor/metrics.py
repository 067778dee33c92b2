"""metrics.py

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

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from modemmonitor.states import State


log = logging.getLogger(__name__)


class PrometheusSink:
    """Prometheus metrics for the state machine, on a private registry."""

    def __init__(self, registry=None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._state = Gauge(
            "modem_monitor_state",
            "Current state of the modem monitor ({0})".format(
                " ".join("{0}={1}".format(s.index, s) for s in State)),
            registry=self.registry)
        self._transitions = Counter(
            "modem_monitor_state_transitions",
            "Total number of state transitions",
            registry=self.registry)
        self._resets = Counter(
            "modem_monitor_resets",
            "Total number of modem resets",
            registry=self.registry)
        self._ping_success = Counter(
            "modem_monitor_ping_success",
            "Total number of successful ping rounds",
            registry=self.registry)
        self._ping_failure = Counter(
            "modem_monitor_ping_failure",
            "Total number of failed ping rounds",
            registry=self.registry)

    def set_state(self, state):
        self._state.set(state.index)

    def count_transition(self):
        self._transitions.inc()

    def count_reset(self):
        self._resets.inc()

    def count_ping(self, success):
        if success:
            self._ping_success.inc()
        else:
            self._ping_failure.inc()


def parse_address(addr):
    """Split "host:port" or ":port" into (host, port)."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        host, port = "", addr
    host = host.strip("[]") or "0.0.0.0"
    try:
        port = int(port)
    except ValueError:
        raise ValueError("invalid metrics address {0!r}".format(addr)) from None
    if not 0 <= port <= 65535:
        raise ValueError("invalid metrics port in {0!r}".format(addr))
    return host, port


def start_metrics_server(addr, registry):
    host, port = parse_address(addr)
    start_http_server(port, addr=host, registry=registry)
    log.info("Metrics available at http://{0}:{1}/metrics".format(host, port))

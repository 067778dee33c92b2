"""machine.py

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


The watchdog state machine.

  operating      ping every ping_interval; a failed round starts an
                 investigation.

  investigating  ping every investigate_interval; any success goes back
                 to operating, no success for investigate_duration cuts
                 the power.

  resetting      power is held off for reset_duration, then restored.

  recovering     ping every ping_interval; success goes back to
                 operating, no success within recover_timeout resets
                 the modem again.

"""

import logging
import time

from dataclasses import dataclass
from datetime import timedelta

from modemmonitor.relay import RelayError
from modemmonitor.states import State


log = logging.getLogger(__name__)

# Long waits are taken in slices; Event.wait overflows on timeouts near the
# largest configurable duration.
LONGEST_WAIT = 3600.0


@dataclass(frozen=True)
class TimingPolicy:

    ping_interval: timedelta = timedelta(seconds=10)
    investigate_interval: timedelta = timedelta(seconds=1)
    investigate_duration: timedelta = timedelta(seconds=10)
    reset_duration: timedelta = timedelta(seconds=10)
    recover_timeout: timedelta = timedelta(minutes=10)

    def __post_init__(self):
        for name in ("ping_interval", "investigate_interval"):
            if getattr(self, name) <= timedelta(0):
                raise ValueError("{0} must be positive".format(name))
        for name in ("investigate_duration", "reset_duration", "recover_timeout"):
            if getattr(self, name) < timedelta(0):
                raise ValueError("{0} must not be negative".format(name))


class WatchdogController:
    """Drives the relay from ping results.

    The pinger needs ping_all(shutdown) -> bool. The relay needs
    cut_power(), restore_power() and raises RelayError on failure. The
    sink receives set_state(), count_transition(), count_reset() and
    count_ping(success).

    """

    def __init__(self, pinger, relay, policy, sink, clock=time.monotonic):
        self._pinger = pinger
        self._relay = relay
        self._policy = policy
        self._sink = sink
        self._clock = clock
        self._state = State.OPERATING
        self._handlers = {
            State.OPERATING: self._operate,
            State.INVESTIGATING: self._investigate,
            State.RESETTING: self._reset,
            State.RECOVERING: self._recover,
        }

    def run(self, shutdown):
        """Run until shutdown (a threading.Event) is set."""
        log.info("Starting.")
        self._transition(State.OPERATING)

        while not shutdown.is_set():
            self._handlers[self._state](shutdown)

        if self._state is State.RESETTING:
            log.warning("Shutdown while resetting, restoring modem power.")
            self._actuate(self._relay.restore_power, "restore power")

        log.info("Stopped in state <{0}>.".format(self._state))

    def _transition(self, new_state):
        if new_state is not self._state:
            log.info("State <{0}> -> <{1}>".format(self._state, new_state))
            self._sink.count_transition()
        self._state = new_state
        self._sink.set_state(new_state)

    def _ping(self, shutdown):
        try:
            ok = bool(self._pinger.ping_all(shutdown))
        except Exception as err:
            log.error("Ping round raised {0!r}, counting it as a failure.".format(err))
            ok = False
        self._sink.count_ping(ok)
        return ok

    def _actuate(self, action, description):
        try:
            action()
        except RelayError as err:
            log.error("Relay failed to {0}: {1}".format(description, err))

    def _wait_until(self, shutdown, when):
        """Block until the clock reaches `when`.

        Returns False if shutdown was requested first.
        """
        while True:
            remaining = when - self._clock()
            if remaining <= 0:
                return not shutdown.is_set()
            if shutdown.wait(min(remaining, LONGEST_WAIT)):
                return False

    def _next_tick(self, tick, interval):
        # Missed ticks are dropped rather than queued.
        return max(tick + interval, self._clock())

    def _poll(self, shutdown, interval, timeout, on_timeout):
        """Ping every `interval` seconds for at most `timeout` seconds.

        A successful round goes to operating, reaching the deadline goes
        to `on_timeout`. A tick that falls on the deadline loses to it.
        With no timeout this pings until a round fails, then goes to
        `on_timeout`.
        """
        tick = self._clock()
        deadline = None if timeout is None else tick + timeout

        while True:
            tick = self._next_tick(tick, interval)
            when = tick if deadline is None else min(tick, deadline)
            if not self._wait_until(shutdown, when):
                return

            if deadline is not None and self._clock() >= deadline:
                self._transition(on_timeout)
                return

            ok = self._ping(shutdown)
            if shutdown.is_set():
                return
            if deadline is None and not ok:
                self._transition(on_timeout)
                return
            if deadline is not None and ok:
                self._transition(State.OPERATING)
                return

    def _operate(self, shutdown):
        self._poll(shutdown,
                    self._policy.ping_interval.total_seconds(),
                    None,
                    State.INVESTIGATING)

    def _investigate(self, shutdown):
        log.warning("Ping round failed, investigating.")
        self._poll(shutdown,
                    self._policy.investigate_interval.total_seconds(),
                    self._policy.investigate_duration.total_seconds(),
                    State.RESETTING)

    def _reset(self, shutdown):
        self._sink.count_reset()
        log.warning("Cutting modem power for {0}.".format(self._policy.reset_duration))
        self._actuate(self._relay.cut_power, "cut power")

        resume = self._clock() + self._policy.reset_duration.total_seconds()
        if not self._wait_until(shutdown, resume):
            return

        log.info("Restoring modem power.")
        self._actuate(self._relay.restore_power, "restore power")
        self._transition(State.RECOVERING)

    def _recover(self, shutdown):
        self._poll(shutdown,
                    self._policy.ping_interval.total_seconds(),
                    self._policy.recover_timeout.total_seconds(),
                    State.RESETTING)
        if self._state is State.RESETTING:
            log.warning("Modem did not recover within {0}, resetting again.".format(
                self._policy.recover_timeout))

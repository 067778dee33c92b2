"""modem-monitor

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


Hardware:

  - This software runs on a RaspberryPi. You will additionally need a
    relay in the modem's power lead, wired so that the modem is powered
    while the relay is released.


Installation instructions:

  - 'sudo pip install .' to get the modem-monitor command, then adjust
    the environment in modem-monitor.service as necessary.

  - Install modem-monitor.service to
    /lib/systemd/system/modem-monitor.service and enable the service
    using the command: 'sudo systemctl enable modem-monitor.service'.

  - It must run as root: ping needs a raw socket and the relay needs
    the GPIO.

"""

import contextlib
import logging
import signal
import sys
import threading
import traceback

from modemmonitor.config import load_config
from modemmonitor.logs import setup_logging
from modemmonitor.machine import WatchdogController
from modemmonitor.metrics import PrometheusSink, start_metrics_server
from modemmonitor.pinger import Pinger
from modemmonitor.relay import RelayError, open_relay


log = logging.getLogger("modemmonitor")

STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


@contextlib.contextmanager
def blocked_signals(signals=STOP_SIGNALS):
    """Hold signals pending so only sigtimedwait() in supervise() sees them.

    Threads started inside inherit the mask.
    """
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, signals)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


def supervise(controller, shutdown, signals=STOP_SIGNALS):
    """Run the controller on a worker thread until a stop signal arrives.

    The stop signals must already be blocked (see blocked_signals) so that
    they queue for this thread instead of running a handler.
    """
    errors = []

    def _run():
        try:
            controller.run(shutdown)
        except BaseException as err:
            errors.append(err)

    worker = threading.Thread(target=_run, name="watchdog")
    worker.start()
    while worker.is_alive():
        info = signal.sigtimedwait(signals, 1.0)
        if info is not None:
            log.info("Received {0}, stopping.".format(signal.Signals(info.si_signo).name))
            shutdown.set()
            break
    worker.join()
    if errors:
        raise errors[0]


def run(config):
    log.info("Ping targets: {0}".format(", ".join(config.ping_targets)))
    log.info("Ping interval: {0}, investigate: {1}/{2}, reset: {3}, recover timeout: {4}".format(
        config.ping_interval, config.investigate_interval, config.investigate_duration,
        config.reset_duration, config.recover_timeout))
    log.info("Relay: GPIO{0} via {1}, metrics: {2}".format(
        config.gpio_pin, config.relay_driver, config.metrics_addr or "disabled"))
    if config.investigate_interval >= config.investigate_duration:
        log.warning("investigate interval {0} is not shorter than investigate duration {1}; "
                    "an outage will be confirmed on a single ping round.".format(
                        config.investigate_interval, config.investigate_duration))

    pinger = Pinger(config.ping_targets, timeout=config.ping_timeout, interface=config.ping_interface)

    try:
        relay = open_relay(config.relay_driver, config.gpio_pin, active_high=not config.relay_active_low)
    except RelayError as err:
        log.critical("Relay initialisation failed: {0}".format(err))
        return 1

    try:
        sink = PrometheusSink()
        if config.metrics_addr:
            try:
                start_metrics_server(config.metrics_addr, sink.registry)
            except OSError as err:
                log.critical("Metrics server failed to start on {0}: {1}".format(config.metrics_addr, err))
                return 1

        controller = WatchdogController(pinger, relay, config.timing_policy(), sink)
        supervise(controller, threading.Event())
    finally:
        try:
            relay.close()
        except RelayError as err:
            log.error("Relay failed to close: {0}".format(err))

    return 0


def main(argv=None):
    config = load_config(argv)
    setup_logging(config.log_file, config.log_level)
    try:
        # Blocked before the metrics server and worker threads start.
        with blocked_signals():
            return run(config)
    except Exception as err:
        log.critical(f"Unexpected {err}, {type(err)}")
        log.critical(traceback.format_exc())
        raise


if __name__ == "__main__":
    sys.exit(main())

"""config.py

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


Every option can be given on the command line or through the
environment variable named in its help text (the systemd unit uses the
environment). The command line wins.

Durations are written like 500ms, 10s, 1m30s or 2h.

"""

import argparse
import os
import re

from dataclasses import dataclass
from datetime import timedelta

from modemmonitor import __version__
from modemmonitor.machine import TimingPolicy
from modemmonitor.metrics import parse_address
from modemmonitor.relay import DRIVERS


# Seconds per unit.
_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1,
    "m": 60,
    "h": 3600,
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

# Largest duration Go accepts: 2**63 - 1 nanoseconds, about 2562047h.
MAX_DURATION = timedelta(microseconds=(2 ** 63 - 1) // 1000)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def duration(text):
    body = text.strip()
    sign = 1
    if body and body[0] in "+-":
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError("empty duration")

    seconds = 0.0
    position = 0
    while position < len(body):
        match = _COMPONENT.match(body, position)
        if match is None:
            raise ValueError("invalid duration {0!r}".format(text))
        seconds += float(match.group(1)) * _UNITS[match.group(2)]
        position = match.end()
    if seconds > MAX_DURATION.total_seconds():
        raise ValueError("duration {0!r} out of range".format(text))
    return timedelta(seconds=sign * seconds)


def target_list(text):
    targets = [t.strip() for t in text.split(",") if t.strip()]
    if not targets:
        raise argparse.ArgumentTypeError("no valid ping targets in {0!r}".format(text))
    return targets


def flag(text):
    value = text.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("", "0", "false", "no", "off"):
        return False
    raise ValueError(text)


@dataclass(frozen=True)
class Config:

    ping_targets: list
    ping_timeout: timedelta
    ping_interface: str
    ping_interval: timedelta
    investigate_interval: timedelta
    investigate_duration: timedelta
    reset_duration: timedelta
    recover_timeout: timedelta
    gpio_pin: int
    relay_driver: str
    relay_active_low: bool
    metrics_addr: str
    log_file: str
    log_level: str

    def timing_policy(self):
        return TimingPolicy(
            ping_interval=self.ping_interval,
            investigate_interval=self.investigate_interval,
            investigate_duration=self.investigate_duration,
            reset_duration=self.reset_duration,
            recover_timeout=self.recover_timeout,
        )


def build_parser(environ):
    def env(name, default):
        return environ.get(name) or default

    parser = argparse.ArgumentParser(
        prog="modem-monitor",
        description="Power-cycle the modem through a relay when the internet goes away.")
    parser.add_argument("--version", action="version", version="%(prog)s " + __version__)

    ping = parser.add_argument_group("ping")
    ping.add_argument("--ping-targets", type=target_list, default=env("PING_TARGETS", "8.8.8.8,1.1.1.1"),
                      help="comma separated hosts; a round succeeds if any replies (PING_TARGETS)")
    ping.add_argument("--ping-timeout", type=duration, default=env("PING_TIMEOUT", "3s"),
                      help="per target reply timeout (PING_TIMEOUT)")
    ping.add_argument("--ping-interface", default=env("PING_INTERFACE", None),
                      help="send pings from this interface, e.g. eth0 (PING_INTERFACE)")

    timing = parser.add_argument_group("timing")
    timing.add_argument("--ping-interval", type=duration, default=env("PING_INTERVAL", "10s"),
                        help="ping cadence while operating or recovering (PING_INTERVAL)")
    timing.add_argument("--investigate-interval", type=duration, default=env("INVESTIGATE_INTERVAL", "1s"),
                        help="ping cadence while confirming an outage (INVESTIGATE_INTERVAL)")
    timing.add_argument("--investigate-duration", type=duration, default=env("INVESTIGATE_DURATION", "10s"),
                        help="how long pings must keep failing before a reset (INVESTIGATE_DURATION)")
    timing.add_argument("--reset-duration", type=duration, default=env("RESET_DURATION", "10s"),
                        help="how long the modem power stays off (RESET_DURATION)")
    timing.add_argument("--recover-timeout", type=duration, default=env("RECOVER_TIMEOUT", "10m"),
                        help="how long to wait for the modem to come back before resetting again (RECOVER_TIMEOUT)")

    relay = parser.add_argument_group("relay")
    relay.add_argument("--gpio-pin", type=int, default=env("GPIO_PIN", "4"),
                       help="BCM number of the relay pin (GPIO_PIN)")
    relay.add_argument("--relay-driver", choices=sorted(DRIVERS), default=env("RELAY_DRIVER", "gpiozero"),
                       help="how to drive the pin (RELAY_DRIVER)")
    relay.add_argument("--relay-active-low", action="store_true",
                       default=environ.get("RELAY_ACTIVE_LOW", ""),
                       help="the relay board energises on a low pin (RELAY_ACTIVE_LOW)")

    misc = parser.add_argument_group("metrics and logging")
    misc.add_argument("--metrics-addr", default=environ.get("METRICS_ADDR", ":9090"),
                      help="host:port for the Prometheus endpoint, empty to disable (METRICS_ADDR)")
    misc.add_argument("--log-file", default=env("LOG_FILE", "/var/log/modem-monitor.log"),
                      help="(LOG_FILE)")
    misc.add_argument("--log-level", default=env("LOG_LEVEL", "INFO").upper(),
                      type=str.upper, choices=LOG_LEVELS,
                      help="(LOG_LEVEL)")
    return parser


def load_config(argv=None, environ=None):
    """Parse argv and the environment into a Config; exits with status 2 on bad input."""
    environ = os.environ if environ is None else environ
    parser = build_parser(environ)
    args = parser.parse_args(argv)

    # store_true leaves the environment's string in place when the flag is absent.
    if isinstance(args.relay_active_low, str):
        try:
            args.relay_active_low = flag(args.relay_active_low)
        except ValueError:
            parser.error("invalid RELAY_ACTIVE_LOW value: {0!r}".format(args.relay_active_low))

    for name in ("ping_interval", "investigate_interval", "ping_timeout"):
        if getattr(args, name) <= timedelta(0):
            parser.error("--{0} must be positive".format(name.replace("_", "-")))
    for name in ("investigate_duration", "reset_duration", "recover_timeout"):
        if getattr(args, name) < timedelta(0):
            parser.error("--{0} must not be negative".format(name.replace("_", "-")))
    # argparse does not check choices against a default taken from the environment.
    if args.relay_driver not in DRIVERS:
        parser.error("invalid RELAY_DRIVER {0!r}, choose from {1}".format(
            args.relay_driver, ", ".join(sorted(DRIVERS))))
    if args.log_level not in LOG_LEVELS:
        parser.error("invalid LOG_LEVEL {0!r}".format(args.log_level))
    if args.gpio_pin < 0:
        parser.error("--gpio-pin must not be negative")
    if args.metrics_addr:
        try:
            parse_address(args.metrics_addr)
        except ValueError as err:
            parser.error(str(err))

    return Config(
        ping_targets=args.ping_targets,
        ping_timeout=args.ping_timeout,
        ping_interface=args.ping_interface,
        ping_interval=args.ping_interval,
        investigate_interval=args.investigate_interval,
        investigate_duration=args.investigate_duration,
        reset_duration=args.reset_duration,
        recover_timeout=args.recover_timeout,
        gpio_pin=args.gpio_pin,
        relay_driver=args.relay_driver,
        relay_active_low=args.relay_active_low,
        metrics_addr=args.metrics_addr,
        log_file=args.log_file,
        log_level=args.log_level,
    )

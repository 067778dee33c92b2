"""relay.py

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


The relay sits in the modem's power supply. Energising it cuts the
power, releasing it restores the power, so a released relay (or a dead
RaspberryPi) always leaves the modem running.

  - GpioRelay drives the pin through gpiozero. Set
    GPIOZERO_PIN_FACTORY=mock to run without hardware.

  - PinctrlRelay shells out to the pinctrl utility, for boards where
    gpiozero has no working pin factory (RaspberryPi 5 on older
    images).

"""

import logging
import subprocess

import gpiozero


log = logging.getLogger(__name__)


class RelayError(Exception):
    pass


class GpioRelay:

    def __init__(self, pin, active_high=True):
        self._pin = pin
        self._closed = False
        try:
            self._output = gpiozero.OutputDevice(pin, active_high=active_high, initial_value=False)
        except (gpiozero.GPIOZeroError, OSError) as err:
            raise RelayError("cannot open GPIO{0}: {1}".format(pin, err)) from err
        log.info("Relay on GPIO{0} ready (active_high={1}).".format(pin, active_high))

    def cut_power(self):
        self._set(True)

    def restore_power(self):
        self._set(False)

    def close(self):
        if self._closed:
            return
        try:
            self.restore_power()
        finally:
            self._closed = True
            self._output.close()

    def _set(self, energised):
        if self._closed:
            raise RelayError("GPIO{0} is closed".format(self._pin))
        try:
            if energised:
                self._output.on()
            else:
                self._output.off()
        except (gpiozero.GPIOZeroError, OSError) as err:
            raise RelayError("GPIO{0}: {1}".format(self._pin, err)) from err


class PinctrlRelay:

    def __init__(self, pin, active_high=True):
        self._pin = pin
        self._cut, self._restore = ("dh", "dl") if active_high else ("dl", "dh")
        self._closed = False
        self.restore_power()
        log.info("Relay on GPIO{0} ready via pinctrl (active_high={1}).".format(pin, active_high))

    def cut_power(self):
        self._pinctrl(self._cut)

    def restore_power(self):
        self._pinctrl(self._restore)

    def close(self):
        if self._closed:
            return
        try:
            self.restore_power()
        finally:
            self._closed = True

    def _pinctrl(self, level):
        if self._closed:
            raise RelayError("GPIO{0} is closed".format(self._pin))
        command = ["pinctrl", "set", str(self._pin), level]
        try:
            subprocess.run(command, check=True, capture_output=True, timeout=5)
        except subprocess.CalledProcessError as err:
            output = (err.stderr or err.stdout or b"").decode(errors="replace").strip()
            raise RelayError("{0}: {1}".format(" ".join(command), output or err)) from err
        except (OSError, subprocess.TimeoutExpired) as err:
            raise RelayError("{0}: {1}".format(" ".join(command), err)) from err


DRIVERS = {
    "gpiozero": GpioRelay,
    "pinctrl": PinctrlRelay,
}


def open_relay(driver, pin, active_high=True):
    try:
        relay_class = DRIVERS[driver]
    except KeyError:
        raise RelayError("unknown relay driver {0!r}".format(driver)) from None
    return relay_class(pin, active_high=active_high)

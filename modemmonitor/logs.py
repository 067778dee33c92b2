"""logs.py

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
import os
import sys

from logging.handlers import RotatingFileHandler


FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(path, level="INFO"):
    """Log to a rotating file and to stderr (the systemd journal).

    Falls back to /tmp when the log file cannot be opened, e.g. when not
    running as root.
    """
    log = logging.getLogger("modemmonitor")
    log.setLevel(level)
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    try:
        handler = RotatingFileHandler(path, maxBytes=1000000, backupCount=10)
    except PermissionError:
        fallback = os.path.join("/tmp", os.path.basename(path))
        handler = RotatingFileHandler(fallback, maxBytes=10000, backupCount=10)
    formatter = logging.Formatter(FORMAT)
    handler.setFormatter(formatter)
    log.addHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    log.addHandler(console)
    return log

#  IP Updater - Keeps DNS records and config files on the current IP
#  Copyright (C) 2023 Dominick C. Pastore
#
#  This program is free software: you can redistribute it and/or modify
#  it under the terms of the GNU General Public License as published by
#  the Free Software Foundation, either version 3 of the License, or
#  (at your option) any later version.
#
#  This program is distributed in the hope that it will be useful,
#  but WITHOUT ANY WARRANTY; without even the implied warranty of
#  MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#  GNU General Public License for more details.
#
#  You should have received a copy of the GNU General Public License
#  along with this program.  If not, see <https://www.gnu.org/licenses/>.

import argparse
import logging
import logging.handlers
import os
import signal
import sys
import time

from . import configuration, manager
from .dnssync import DNSSyncManager
from .detector import IPDetector, StaticDetector
from .exceptions import (CancelledError, ConfigError, CycleError,
                         DetectError, UpdateError)


#: Rotated log files kept alongside the current one
LOG_BACKUP_COUNT = 10

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
}


class AgeLimitedRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """A :class:`~logging.handlers.RotatingFileHandler` that also deletes
    rotated files older than a number of days

    :param filename: Log file path
    :param max_size: Size in MB at which to rotate
    :param max_age: Days to keep rotated files, or 0 to keep them until they
                    rotate out
    """

    def __init__(self, filename: str, max_size: int, max_age: int):
        super().__init__(filename, maxBytes=max_size * 1024 * 1024,
                         backupCount=LOG_BACKUP_COUNT)
        self.max_age = max_age

    def doRollover(self):
        super().doRollover()
        if not self.max_age:
            return
        cutoff = time.time() - self.max_age * 86400
        for i in range(1, self.backupCount + 1):
            name = f"{self.baseFilename}.{i}"
            try:
                if os.path.getmtime(name) < cutoff:
                    os.remove(name)
            except FileNotFoundError:
                continue


def parse_args(argv):
    """Parse command line arguments

    :param argv: Either ``None`` or a list of arguments
    :returns: a :class:`argparse.Namespace` containing the parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="IP Updater for DNS Records and Config Files",
    )
    parser.add_argument("-c", "--configfile", default="/etc/ipupdater.toml",
                        help="Path to the config file")
    parser.add_argument("-d", "--debug-logs", action="store_true",
                        help="Increase verbosity of logging significantly")
    parser.add_argument("-s", "--stderr", action="store_true",
                        help="Log to stderr instead of syslog or file")
    parser.add_argument("-1", "--single-shot", action="store_true",
                        help="Check and update once, then exit")
    parser.add_argument("-t", "--test-dns", action="store_true",
                        help="Check the DNS providers and credentials, then "
                             "exit without updating anything")
    parser.add_argument("--ip",
                        help="Use this IP address instead of detecting it")
    return parser.parse_args(argv)


def setup_logging(conf: configuration.Config, debug: bool) -> logging.Logger:
    """Attach a handler to the ``ipupdater`` logger as configured

    :param conf: The configuration
    :param debug: Log at debug level regardless of the configuration
    :raises ConfigError: if the log file cannot be opened
    """
    if conf.log_file == 'syslog':
        log_handler: logging.Handler = logging.handlers.SysLogHandler()
        log_handler.setFormatter(logging.Formatter('%(name)s: %(message)s'))
    elif conf.log_file == 'stderr':
        log_handler = logging.StreamHandler()
        log_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        try:
            log_dir = os.path.dirname(conf.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            log_handler = AgeLimitedRotatingFileHandler(
                conf.log_file, conf.log_max_size, conf.log_max_age
            )
        except OSError as e:
            raise ConfigError(f"Could not open log file {conf.log_file}: "
                              f"{e.strerror}") from e
        log_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    log = logging.getLogger('ipupdater')
    log.addHandler(log_handler)

    if debug:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(_LEVELS[conf.log_level])
    return log


def check_dns(conf: configuration.Config, log: logging.Logger) -> bool:
    """Check every DNS target's provider and credentials without changing
    any records

    :param conf: The configuration
    :param log: Logger for the summary
    :return: ``True`` if every target could be checked
    """
    dns_manager = DNSSyncManager()
    dns_manager.initialize_providers()
    ok = True
    for target in conf.dns_targets:
        try:
            report = dns_manager.check(target)
        except UpdateError as e:
            log.error("DNS check failed for %s: %s", target.name, e)
            ok = False
            continue
        found = sum(1 for _, value in report if value is not None)
        log.info("DNS check passed for %s: %d of %d records found",
                 target.name, found, len(report))
    return ok


def main(argv=None):
    """Main entry point when run as a standalone program

    :param argv: List of arguments. If ``None``, read :data:`sys.argv`.
    """
    args = parse_args(argv)
    try:
        conf = configuration.read_config_from_path(args.configfile)
        if args.stderr:
            conf.log_file = 'stderr'
        log = setup_logging(conf, args.debug_logs)
    except ConfigError as e:
        print("Config error:", e, file=sys.stderr)
        sys.exit(2)

    if args.test_dns:
        if not check_dns(conf, log):
            sys.exit(1)
        return

    if args.ip is not None:
        detector = StaticDetector(args.ip)
    else:
        detector = IPDetector(conf.api_endpoints, conf.web_endpoints,
                              conf.detection_timeout)
    update_manager = manager.UpdateManager(conf)

    # Stop on SIGINT (^C) or SIGTERM
    def handle_signals(sig, _):
        log.info("Received signal: %s", signal.Signals(sig).name)
        update_manager.stop()
    signal.signal(signal.SIGINT, handle_signals)
    signal.signal(signal.SIGTERM, handle_signals)

    if args.single_shot:
        try:
            update_manager.run_once(detector)
        except (DetectError, CycleError) as e:
            log.error("Update failed: %s", e)
            sys.exit(1)
        except CancelledError:
            log.warning("Update cancelled")
            sys.exit(1)
        return

    update_manager.run_forever(detector)

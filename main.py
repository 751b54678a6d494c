"""
This module is the main entry point for winmaint, the unattended Windows
maintenance run. It elevates itself, records the running user applications,
upgrades Chocolatey packages, applies Windows updates and finally reopens
the recorded applications unless a reboot is pending.
"""

import argparse
import logging
import os
import platform
import sys
import time
from typing import List, Optional, Sequence

from src.i18n import _, set_language
from src.winmaint import __version__
from src.winmaint.collection.application_catalog import (
    DEFAULT_CATALOG,
    catalog_from_config,
)
from src.winmaint.collection.application_census import ApplicationCensus
from src.winmaint.core.config import ConfigManager
from src.winmaint.core.exceptions import ElevationError
from src.winmaint.core.run_state import RunResult
from src.winmaint.operations.application_restart import ApplicationRestarter
from src.winmaint.operations.chocolatey_upgrade import ChocolateyUpgrader
from src.winmaint.operations.privilege_guard import (
    PrivilegeGuard,
    pin_config_argument,
)
from src.winmaint.operations.windows_update import WindowsUpdateApplier
from src.winmaint.utils.logging_formatter import UTCTimestampFormatter, resolve_level
from src.winmaint.utils.verbosity_logger import get_logger

LOG_FILENAME = "maintenance.log"


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse the command line; PowerShell-style switches are accepted as-is."""
    parser = argparse.ArgumentParser(
        prog="winmaint",
        description=_("Unattended Windows maintenance: packages, updates, app restart."),
    )
    parser.add_argument(
        "-AutoReboot",
        "--auto-reboot",
        dest="auto_reboot",
        action="store_true",
        help=_("reboot automatically when Windows updates require it"),
    )
    parser.add_argument(
        "-SkipChocolatey",
        "--skip-chocolatey",
        dest="skip_chocolatey",
        action="store_true",
        help=_("do not upgrade Chocolatey packages"),
    )
    parser.add_argument(
        "-SkipWindowsUpdate",
        "--skip-windows-update",
        dest="skip_windows_update",
        action="store_true",
        help=_("do not apply Windows updates"),
    )
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help=_("path to a YAML configuration file"),
    )
    parser.add_argument("--version", action="version", version=__version__)
    return parser.parse_args(argv)


def default_log_file() -> str:
    """Pick the log file location when the configuration names none."""
    env_log_dir = os.environ.get("WINMAINT_LOG_DIR")
    if env_log_dir:
        log_dir = env_log_dir
    elif os.name == "nt":
        program_data = os.environ.get("ProgramData", r"C:\ProgramData")
        log_dir = os.path.join(program_data, "WinMaint", "Logs")
    else:
        log_dir = os.path.join(os.getcwd(), "logs")
    return os.path.join(log_dir, LOG_FILENAME)


class MaintenanceRunner:  # pylint: disable=too-many-instance-attributes
    """Runs one maintenance pass from elevation to summary."""

    def __init__(
        self,
        options: argparse.Namespace,
        argv: Optional[List[str]] = None,
        config: Optional[ConfigManager] = None,
        privilege_guard: Optional[PrivilegeGuard] = None,
        census: Optional[ApplicationCensus] = None,
        package_upgrader: Optional[ChocolateyUpgrader] = None,
        update_applier: Optional[WindowsUpdateApplier] = None,
        restarter: Optional[ApplicationRestarter] = None,
    ):
        self.options = options
        self.argv = list(sys.argv if argv is None else argv)
        self.config = config or ConfigManager(options.config)
        set_language(self.config.get_language())

        self.privilege_guard = privilege_guard or PrivilegeGuard(
            entry_script=os.path.abspath(__file__)
        )
        self.census = census
        self.package_upgrader = package_upgrader or ChocolateyUpgrader()
        self.update_applier = update_applier or WindowsUpdateApplier()
        self.restarter = restarter or ApplicationRestarter()

        self.logger = get_logger(__name__, self.config)
        self.logging_ready = False
        self.result = RunResult()

    def setup_logging(self) -> str:
        """Send all log records to the maintenance log file (and console if interactive)."""
        log_file = self.config.get_log_file() or default_log_file()
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        level = resolve_level(self.config.get_log_level())
        formatter = UTCTimestampFormatter()

        # Clear any existing handlers to prevent double logging
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        root_logger.setLevel(level)

        if self._should_log_to_console():
            console_handler = logging.StreamHandler()
            console_handler.setLevel(level)
            console_handler.setFormatter(formatter)
            root_logger.addHandler(console_handler)

        self.logging_ready = True
        return log_file

    def _should_log_to_console(self) -> bool:
        configured = self.config.should_log_to_console()
        if configured is not None:
            return bool(configured)
        if os.environ.get("WINMAINT_LOG_CONSOLE", "").lower() in ("1", "true", "yes"):
            return True
        return bool(getattr(sys.stdout, "isatty", lambda: False)())

    def _build_census(self) -> ApplicationCensus:
        overrides = self.config.get_application_overrides()
        catalog = catalog_from_config(overrides) if overrides is not None else DEFAULT_CATALOG
        return ApplicationCensus(catalog)

    def run(self) -> int:
        """Run every step in order and return the process exit code."""
        started = time.monotonic()
        log_file = self.setup_logging()
        self.logger.info(_("winmaint %s starting, logging to %s"), __version__, log_file)
        if self.config.loaded:
            self.logger.info(_("Loaded configuration from %s"), self.config.config_file)
        self.logger.info(
            _("Options: AutoReboot=%s SkipChocolatey=%s SkipWindowsUpdate=%s"),
            self.options.auto_reboot,
            self.options.skip_chocolatey,
            self.options.skip_windows_update,
        )

        if platform.system() != "Windows":
            self.logger.error(_("winmaint only runs on Windows (detected %s)"), platform.system())
            return 1

        self.privilege_guard.ensure_elevated(
            pin_config_argument(self.argv, self.config.config_file)
        )

        census = self.census or self._build_census()
        snapshot = census.take_snapshot()

        self.result.package_upgrade_attempted = self.package_upgrader.upgrade_packages(
            self.options.skip_chocolatey
        )

        self.result.os_update_attempted = not self.options.skip_windows_update
        self.result.reboot_required = self.update_applier.apply_updates(
            self.options.skip_windows_update, self.options.auto_reboot
        )

        self.result.applications_restarted = self.restarter.restart_applications(
            snapshot, self.result.reboot_required
        )

        self._log_summary(snapshot, time.monotonic() - started)
        return 0

    def _log_summary(self, snapshot, elapsed: float) -> None:
        result = self.result
        self.logger.info(_("===== Maintenance summary ====="))
        self.logger.info(
            _("Chocolatey upgrade: %s"),
            _("attempted") if result.package_upgrade_attempted else _("not run"),
        )
        self.logger.info(
            _("Windows Update: %s"),
            _("attempted") if result.os_update_attempted else _("skipped"),
        )
        self.logger.info(_("Applications recorded: %s"), ", ".join(snapshot) or "-")
        self.logger.info(
            _("Applications reopened: %s"), ", ".join(result.applications_restarted) or "-"
        )
        if result.reboot_required:
            self.logger.warning(_("A reboot is required to finish installing updates"))
        self.logger.success(_("Maintenance finished in %.1f seconds"), elapsed)


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point; returns the process exit code."""
    argv = list(sys.argv if argv is None else argv)
    options = parse_arguments(argv[1:])

    runner = None
    try:
        runner = MaintenanceRunner(options, argv=argv)
        return runner.run()
    except ElevationError as error:
        _report_fatal(runner, _("Elevation failed: %s") % error)
        return 1
    except Exception as error:  # pylint: disable=broad-exception-caught
        _report_fatal(runner, _("Unhandled error: %s") % error, with_traceback=True)
        return 1


def _report_fatal(runner, message: str, with_traceback: bool = False) -> None:
    if runner is not None and runner.logging_ready:
        if with_traceback:
            runner.logger.exception(message)
        else:
            runner.logger.error(message)
    else:
        print(message, file=sys.stderr)


def console_main() -> None:
    """Entry point for the ``winmaint`` console script."""
    sys.exit(main())


if __name__ == "__main__":
    console_main()

"""
Reopens the applications recorded in the pre-update snapshot.
"""

import logging
import os
import subprocess  # nosec B404
import time
from typing import Callable, List

from src.i18n import _
from src.winmaint.collection.application_census import is_process_running
from src.winmaint.core.run_state import ApplicationSnapshot
from src.winmaint.utils.logging_formatter import SUCCESS

logger = logging.getLogger(__name__)

LAUNCH_PAUSE_SECONDS = 2


def _detached_flags() -> int:
    return getattr(subprocess, "DETACHED_PROCESS", 0) | getattr(
        subprocess, "CREATE_NEW_PROCESS_GROUP", 0
    )


def launch_application(path: str) -> None:
    """Start an executable detached from this process."""
    subprocess.Popen(  # nosec B603 # pylint: disable=consider-using-with
        [path],
        cwd=os.path.dirname(path) or None,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        close_fds=True,
        creationflags=_detached_flags(),
    )


class ApplicationRestarter:
    """Relaunches snapshot applications that are no longer running."""

    def __init__(
        self,
        is_running: Callable[[str], bool] = is_process_running,
        launcher: Callable[[str], None] = launch_application,
        sleep: Callable[[float], None] = time.sleep,
        pause_seconds: float = LAUNCH_PAUSE_SECONDS,
    ):
        self._is_running = is_running
        self._launch = launcher
        self._sleep = sleep
        self.pause_seconds = pause_seconds

    def restart_applications(
        self, snapshot: ApplicationSnapshot, reboot_required: bool
    ) -> List[str]:
        """
        Reopen applications from the snapshot.

        Nothing is launched when a reboot is pending: the applications would
        be closed again moments later.

        Returns:
            The identifiers that were relaunched.
        """
        if reboot_required:
            logger.info(_("Reboot required, applications will not be reopened"))
            return []
        if not snapshot:
            logger.info(_("No applications to reopen"))
            return []

        restarted = []
        for identifier, path in snapshot.items():
            try:
                if self._is_running(identifier):
                    logger.info(_("%s is already running, skipping"), identifier)
                    continue

                logger.info(_("Reopening %s from %s"), identifier, path)
                self._launch(path)
            except Exception as error:  # pylint: disable=broad-exception-caught
                logger.warning(_("Failed to reopen %s: %s"), identifier, error)
                continue

            restarted.append(identifier)
            self._sleep(self.pause_seconds)

        logger.log(
            SUCCESS, _("Reopened %d of %d applications"), len(restarted), len(snapshot)
        )
        return restarted

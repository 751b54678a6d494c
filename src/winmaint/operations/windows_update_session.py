"""
Windows Update Agent (WUA) COM interface for winmaint.

Used when PSWindowsUpdate is unavailable or fails. Every COM object obtained
here is registered with a ComHandleScope, which releases each one exactly
once, in reverse order, however the routine exits.
"""

import contextlib
import logging
import subprocess  # nosec B404
import time
from typing import Any, Callable, List, Tuple

from src.i18n import _
from src.winmaint.utils.logging_formatter import SUCCESS
from src.winmaint.utils.powershell import creation_flags

logger = logging.getLogger(__name__)

SEARCH_CRITERIA = "IsInstalled=0 and IsHidden=0"
REBOOT_GRACE_SECONDS = 60
FORCE_REBOOT_COMMAND = ["shutdown.exe", "/r", "/t", "0", "/f"]


def release_com_object(handle: Any) -> None:
    """Drop pywin32's reference to the underlying IDispatch interface."""
    if hasattr(handle, "_oleobj_"):
        handle.__dict__["_oleobj_"] = None


def dispatch(prog_id: str) -> Any:
    """Create a COM object by ProgID."""
    import win32com.client  # pylint: disable=import-outside-toplevel,import-error

    return win32com.client.Dispatch(prog_id)


@contextlib.contextmanager
def com_apartment():
    """Initialize COM on this thread for the duration of the block."""
    import pythoncom  # pylint: disable=import-outside-toplevel,import-error

    pythoncom.CoInitialize()
    try:
        yield
    finally:
        pythoncom.CoUninitialize()


def force_reboot() -> None:
    """Reboot immediately, closing applications without prompting."""
    subprocess.run(  # nosec B603
        FORCE_REBOOT_COMMAND, check=False, creationflags=creation_flags()
    )


class ComHandleScope:
    """Tracks acquired COM handles and releases each of them exactly once."""

    def __init__(self, releaser: Callable[[Any], None] = release_com_object):
        self._releaser = releaser
        self._handles: List[Tuple[str, Any]] = []

    def acquire(self, name: str, handle: Any) -> Any:
        """Register a handle for release and return it unchanged."""
        self._handles.append((name, handle))
        return handle

    @property
    def acquired(self) -> List[str]:
        """Names of the handles still awaiting release."""
        return [name for name, _handle in self._handles]

    def release_all(self) -> None:
        """Release every tracked handle, newest first."""
        while self._handles:
            name, handle = self._handles.pop()
            try:
                self._releaser(handle)
                logger.debug("Released COM handle: %s", name)
            except Exception as error:  # pylint: disable=broad-exception-caught
                logger.warning(_("Failed to release COM handle %s: %s"), name, error)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.release_all()
        return False


class WindowsUpdateSessionInstaller:
    """Searches, downloads and installs updates through the WUA COM API."""

    def __init__(
        self,
        dispatcher: Callable[[str], Any] = dispatch,
        releaser: Callable[[Any], None] = release_com_object,
        apartment=com_apartment,
        sleep: Callable[[float], None] = time.sleep,
        rebooter: Callable[[], None] = force_reboot,
    ):
        self._dispatch = dispatcher
        self._releaser = releaser
        self._apartment = apartment
        self._sleep = sleep
        self._reboot = rebooter

    def install_pending(self, auto_reboot: bool) -> bool:
        """
        Install all pending updates.

        Returns:
            True if the installer reported that a reboot is required. Any
            failure is logged and reported as False.
        """
        try:
            with self._apartment():
                return self._install_in_apartment(auto_reboot)
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.error(_("Windows Update Agent could not be initialized: %s"), str(error))
            return False

    def _install_in_apartment(self, auto_reboot: bool) -> bool:
        # The traceback holds COM proxies; it must be dropped inside the apartment.
        try:
            with ComHandleScope(self._releaser) as handles:
                return self._install(handles, auto_reboot)
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.error(_("Windows Update Agent installation failed: %s"), str(error))
            return False

    def _install(self, handles: ComHandleScope, auto_reboot: bool) -> bool:
        session = handles.acquire("session", self._dispatch("Microsoft.Update.Session"))
        searcher = handles.acquire("searcher", session.CreateUpdateSearcher())

        logger.info(_("Searching for updates (%s)"), SEARCH_CRITERIA)
        updates = searcher.Search(SEARCH_CRITERIA).Updates
        if updates.Count == 0:
            logger.log(SUCCESS, _("No Windows updates are pending"))
            return False
        logger.info(_("Found %d pending Windows updates"), updates.Count)

        to_download = handles.acquire(
            "download collection", self._dispatch("Microsoft.Update.UpdateColl")
        )
        for index in range(updates.Count):
            update = updates.Item(index)
            logger.info(_("Pending update: %s"), update.Title)
            if not update.EulaAccepted:
                update.AcceptEula()
            if not update.IsDownloaded:
                to_download.Add(update)

        if to_download.Count > 0:
            logger.info(_("Downloading %d updates"), to_download.Count)
            downloader = handles.acquire("downloader", session.CreateUpdateDownloader())
            downloader.Updates = to_download
            downloader.Download()

        to_install = handles.acquire(
            "install collection", self._dispatch("Microsoft.Update.UpdateColl")
        )
        for index in range(updates.Count):
            update = updates.Item(index)
            if update.IsDownloaded:
                to_install.Add(update)

        if to_install.Count == 0:
            logger.warning(_("No updates finished downloading, nothing to install"))
            return False

        logger.info(_("Installing %d updates"), to_install.Count)
        installer = handles.acquire("installer", session.CreateUpdateInstaller())
        installer.Updates = to_install
        result = installer.Install()
        reboot_required = bool(result.RebootRequired)
        logger.log(
            SUCCESS,
            _("Windows Update Agent installation finished (result code %s, reboot required: %s)"),
            result.ResultCode,
            reboot_required,
        )

        if reboot_required and auto_reboot:
            logger.warning(
                _("Reboot required, restarting in %d seconds; save your work"),
                REBOOT_GRACE_SECONDS,
            )
            self._sleep(REBOOT_GRACE_SECONDS)
            self._reboot()
        return reboot_required

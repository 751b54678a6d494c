"""
Windows Update step for winmaint.

Tries PSWindowsUpdate first and falls back to the Windows Update Agent COM
API when the module is unavailable or any of its calls fail. The step never
raises: it reports whether a reboot is required, defaulting to False.
"""

import logging
from typing import Optional

from src.i18n import _
from src.winmaint.operations.windows_update_module import PSWindowsUpdateClient
from src.winmaint.operations.windows_update_session import (
    WindowsUpdateSessionInstaller,
)
from src.winmaint.utils.logging_formatter import SUCCESS

logger = logging.getLogger(__name__)


class WindowsUpdateApplier:
    """Applies pending Windows updates with a preferred and a fallback strategy."""

    def __init__(
        self,
        module_client: Optional[PSWindowsUpdateClient] = None,
        session_installer: Optional[WindowsUpdateSessionInstaller] = None,
    ):
        self.module_client = module_client or PSWindowsUpdateClient()
        self.session_installer = session_installer or WindowsUpdateSessionInstaller()

    def _try_module(self, auto_reboot: bool) -> Optional[bool]:
        """Apply updates via PSWindowsUpdate; None means use the fallback."""
        try:
            if not self.module_client.ensure_available():
                logger.warning(
                    _("PSWindowsUpdate could not be made available, using the Windows Update Agent")
                )
                return None

            pending = self.module_client.list_pending()
            if not pending:
                logger.log(SUCCESS, _("No Windows updates are pending"))
                return False

            logger.info(_("Installing %d Windows updates via PSWindowsUpdate"), len(pending))
            for update in pending:
                logger.info(
                    _("Pending update: %s %s"), update.get("KB", ""), update.get("Title", "")
                )

            if auto_reboot:
                self.module_client.install_all(auto_reboot=True)
                # Reaching this point means Windows did not reboot during install
                logger.warning(
                    _("Install with automatic reboot returned without rebooting; treating as no reboot needed")
                )
                return False

            self.module_client.install_all(auto_reboot=False)
            reboot_required = self.module_client.query_pending_reboot()
            logger.log(
                SUCCESS,
                _("PSWindowsUpdate installation finished (reboot required: %s)"),
                reboot_required,
            )
            return reboot_required
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.error(
                _("PSWindowsUpdate failed, falling back to the Windows Update Agent: %s"),
                error,
            )
            return None

    def apply_updates(self, skip: bool, auto_reboot: bool) -> bool:
        """
        Apply all pending Windows updates.

        Returns:
            True if a reboot is required afterwards.
        """
        if skip:
            logger.info(_("Skipping Windows updates"))
            return False

        result = self._try_module(auto_reboot)
        if result is not None:
            return result

        return self.session_installer.install_pending(auto_reboot)

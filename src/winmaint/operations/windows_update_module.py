"""
PSWindowsUpdate interface for winmaint.

This is the preferred way of applying Windows updates. Each call runs a short
PowerShell script; any failure is raised as WindowsUpdateError so the caller
can fall back to the Windows Update Agent API.
"""

import json
import logging
import subprocess  # nosec B404
from typing import Any, Callable, Dict, List

from src.i18n import _
from src.winmaint.core.exceptions import WindowsUpdateError
from src.winmaint.utils.powershell import run_powershell

logger = logging.getLogger(__name__)

MODULE_NAME = "PSWindowsUpdate"

# Installed with -Scope AllUsers so SYSTEM and every account can import it.
ENSURE_MODULE_SCRIPT = """
$ErrorActionPreference = 'Stop'
try {
    if (-not (Get-Module -ListAvailable -Name 'PSWindowsUpdate')) {
        [Net.ServicePointManager]::SecurityProtocol = [Net.ServicePointManager]::SecurityProtocol -bor [Net.SecurityProtocolType]::Tls12
        if (-not (Get-PackageProvider -ListAvailable -Name NuGet -ErrorAction SilentlyContinue)) {
            Install-PackageProvider -Name NuGet -MinimumVersion 2.8.5.201 -Force -Scope AllUsers | Out-Null
        }
        Install-Module -Name 'PSWindowsUpdate' -Force -Scope AllUsers -AllowClobber
    }
    Import-Module 'PSWindowsUpdate'
    Write-Output 'AVAILABLE'
} catch {
    Write-Error $_.Exception.Message
    exit 1
}
"""

LIST_PENDING_SCRIPT = """
$ErrorActionPreference = 'Stop'
try {
    Import-Module 'PSWindowsUpdate'
    $updates = @(Get-WindowsUpdate -MicrosoftUpdate | ForEach-Object {
        @{ KB = [string]$_.KB; Title = [string]$_.Title; Size = [string]$_.Size }
    })
    ConvertTo-Json -InputObject $updates -Depth 3 -Compress
} catch {
    Write-Error $_.Exception.Message
    exit 1
}
"""

INSTALL_SCRIPT_TEMPLATE = """
$ErrorActionPreference = 'Stop'
try {{
    Import-Module 'PSWindowsUpdate'
    Install-WindowsUpdate -MicrosoftUpdate -AcceptAll {reboot_switch} -Confirm:$false | Out-String -Width 200
}} catch {{
    Write-Error $_.Exception.Message
    exit 1
}}
"""

REBOOT_STATUS_SCRIPT = """
$ErrorActionPreference = 'Stop'
try {
    Import-Module 'PSWindowsUpdate'
    [bool](Get-WURebootStatus -Silent)
} catch {
    Write-Error $_.Exception.Message
    exit 1
}
"""


class PSWindowsUpdateClient:
    """Thin wrapper over the PSWindowsUpdate cmdlets."""

    def __init__(
        self, runner: Callable[[str], subprocess.CompletedProcess] = run_powershell
    ):
        self._run = runner

    def _invoke(self, script: str, action: str) -> str:
        try:
            result = self._run(script)
        except OSError as error:
            raise WindowsUpdateError(
                _("Unable to start PowerShell for %s: %s") % (action, error)
            ) from error

        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise WindowsUpdateError(
                _("%s failed with exit code %d: %s")
                % (action, result.returncode, detail[:500])
            )
        return (result.stdout or "").strip()

    def ensure_available(self) -> bool:
        """Install and import the module if needed; False if it stays unavailable."""
        try:
            output = self._invoke(ENSURE_MODULE_SCRIPT, _("PSWindowsUpdate setup"))
        except WindowsUpdateError as error:
            logger.warning(_("PSWindowsUpdate is unavailable: %s"), error)
            return False
        return "AVAILABLE" in output

    def list_pending(self) -> List[Dict[str, Any]]:
        """Return the updates that are waiting to be installed."""
        output = self._invoke(LIST_PENDING_SCRIPT, _("Listing pending updates"))
        if not output:
            return []
        try:
            updates = json.loads(output)
        except json.JSONDecodeError as error:
            raise WindowsUpdateError(
                _("Unexpected Get-WindowsUpdate output: %s") % output[:200]
            ) from error

        # A single object is not wrapped in a list by older PowerShell versions
        if isinstance(updates, dict):
            updates = [updates]
        return updates or []

    def install_all(self, auto_reboot: bool) -> str:
        """Install every pending update, letting Windows reboot only if asked to."""
        reboot_switch = "-AutoReboot" if auto_reboot else "-IgnoreReboot"
        return self._invoke(
            INSTALL_SCRIPT_TEMPLATE.format(reboot_switch=reboot_switch),
            _("Installing updates"),
        )

    def query_pending_reboot(self) -> bool:
        """Return True when Windows reports a pending reboot."""
        output = self._invoke(REBOOT_STATUS_SCRIPT, _("Reboot status query"))
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        if not lines:
            raise WindowsUpdateError(_("Get-WURebootStatus returned no output"))
        return lines[-1].lower() == "true"

"""
Blocking PowerShell invocation for winmaint.
"""

import logging
import subprocess  # nosec B404
from typing import List

logger = logging.getLogger(__name__)

POWERSHELL_EXE = "powershell.exe"


def creation_flags() -> int:
    """Flags that keep child consoles hidden; zero off Windows."""
    return getattr(subprocess, "CREATE_NO_WINDOW", 0)


def powershell_command(script: str) -> List[str]:
    """Build the argument list for running an inline script."""
    return [
        POWERSHELL_EXE,
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        script,
    ]


def run_powershell(script: str) -> subprocess.CompletedProcess:
    """
    Run an inline PowerShell script and wait for it to finish.

    No timeout is applied; Windows Update installs may run for a long time.
    """
    result = subprocess.run(  # nosec B603
        powershell_command(script),
        capture_output=True,
        text=True,
        check=False,
        creationflags=creation_flags(),
    )
    logger.debug(
        "PowerShell exited with %d, stdout='%s', stderr='%s'",
        result.returncode,
        (result.stdout or "").strip()[:500],
        (result.stderr or "").strip()[:500],
    )
    return result

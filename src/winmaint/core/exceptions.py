"""
Exception types for winmaint.

Only ElevationError is fatal to a run. The other errors are raised inside a
step and converted to a safe default at that step's boundary.
"""


class WinMaintError(Exception):
    """Base class for all winmaint errors."""


class ElevationError(WinMaintError):
    """The process could not relaunch itself with administrative rights."""


class PackageManagerError(WinMaintError):
    """Chocolatey could not be located, installed or run."""


class WindowsUpdateError(WinMaintError):
    """A call into the PSWindowsUpdate interface failed."""

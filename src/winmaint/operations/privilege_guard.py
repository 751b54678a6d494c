"""
Privilege guard for winmaint.

Makes sure the maintenance run holds administrative rights. An unprivileged
instance relaunches itself through the UAC "runas" verb with the same
arguments and exits without waiting for the elevated copy.
"""

import logging
import os
import subprocess  # nosec B404
import sys
from typing import List, Optional, Sequence, Tuple

from src.i18n import _
from src.winmaint.core.exceptions import ElevationError

logger = logging.getLogger(__name__)

# ShellExecuteW returns a value greater than 32 on success
SHELL_EXECUTE_SUCCESS_THRESHOLD = 32
SW_SHOWNORMAL = 1

CONSOLE_INTERPRETER = "python.exe"
WINDOWLESS_INTERPRETER = "pythonw.exe"


def is_running_privileged() -> bool:
    """Return True when the current process is running as an administrator."""
    try:
        import ctypes  # pylint: disable=import-outside-toplevel

        return ctypes.windll.shell32.IsUserAnAdmin() != 0
    except (AttributeError, OSError):
        return False


def _shell_execute(verb: str, executable: str, parameters: str, directory: str) -> int:
    import ctypes  # pylint: disable=import-outside-toplevel

    return ctypes.windll.shell32.ShellExecuteW(
        None, verb, executable, parameters, directory, SW_SHOWNORMAL
    )


CONFIG_OPTION = "--config"


def pin_config_argument(argv: Sequence[str], config_file: Optional[str]) -> List[str]:
    """
    Rewrite ``--config`` so the elevated copy reads the same file.

    The elevated copy starts in the system directory, so a relative path (or a
    file found in the current directory) is forwarded as an absolute path.
    """
    arguments = list(argv[:1])
    remaining = iter(argv[1:])
    for argument in remaining:
        if argument == CONFIG_OPTION:
            next(remaining, None)
            continue
        if argument.startswith(CONFIG_OPTION + "="):
            continue
        arguments.append(argument)

    if config_file:
        arguments.extend([CONFIG_OPTION, os.path.abspath(config_file)])
    return arguments


class PrivilegeGuard:
    """Ensures the run continues only in an elevated process."""

    def __init__(
        self,
        is_elevated=is_running_privileged,
        shell_execute=_shell_execute,
        executable: Optional[str] = None,
        frozen: Optional[bool] = None,
        entry_script: Optional[str] = None,
    ):
        self._is_elevated = is_elevated
        self._shell_execute = shell_execute
        self._executable = executable or sys.executable
        self._frozen = getattr(sys, "frozen", False) if frozen is None else frozen
        self._entry_script = entry_script

    def resolve_script_path(self, argv: Sequence[str]) -> Optional[str]:
        """
        Locate the script being run; frozen executables have none.

        The entry script wins over ``argv[0]``: console-script launchers put
        their own name there, which is not a Python file.
        """
        if self._frozen:
            return None
        if self._entry_script:
            candidate = self._entry_script
        elif argv and argv[0]:
            candidate = argv[0]
        else:
            raise ElevationError(_("Unable to determine the path of the running script"))

        script_path = os.path.abspath(candidate)
        if not os.path.isfile(script_path):
            raise ElevationError(
                _("Running script '%s' does not exist on disk") % script_path
            )
        return script_path

    def resolve_interpreter(self) -> str:
        """
        Locate the interpreter to relaunch with.

        The console and windowless interpreters live side by side; the one
        matching the running interpreter is chosen so the elevated copy
        behaves the same way.
        """
        if not self._executable:
            raise ElevationError(_("Unable to determine the running interpreter"))

        if self._frozen:
            candidate = self._executable
        else:
            current = os.path.basename(self._executable).lower()
            variant = (
                WINDOWLESS_INTERPRETER
                if current.startswith("pythonw")
                else CONSOLE_INTERPRETER
            )
            candidate = os.path.join(os.path.dirname(self._executable), variant)

        if not os.path.isfile(candidate):
            raise ElevationError(_("Interpreter '%s' could not be found") % candidate)
        return candidate

    def build_relaunch(self, argv: Sequence[str]) -> Tuple[str, str]:
        """Return the executable and the parameter string for the elevated copy."""
        script_path = self.resolve_script_path(argv)
        interpreter = self.resolve_interpreter()

        arguments: List[str] = list(argv[1:])
        if script_path is not None:
            arguments.insert(0, script_path)
        return interpreter, subprocess.list2cmdline(arguments)

    def ensure_elevated(self, argv: Sequence[str]) -> bool:
        """
        Return True if already elevated; otherwise relaunch elevated and exit 0.

        Raises:
            ElevationError: the relaunch could not be prepared or was refused.
        """
        if self._is_elevated():
            logger.info(_("Running with administrative rights"))
            return True

        executable, parameters = self.build_relaunch(argv)
        logger.warning(
            _("Administrative rights required, relaunching elevated: %s %s"),
            executable,
            parameters,
        )

        result = self._shell_execute("runas", executable, parameters, os.getcwd())
        if result <= SHELL_EXECUTE_SUCCESS_THRESHOLD:
            raise ElevationError(
                _("Elevated relaunch was refused (ShellExecute code %d)") % result
            )

        logger.info(_("Elevated instance launched, exiting this instance"))
        sys.exit(0)

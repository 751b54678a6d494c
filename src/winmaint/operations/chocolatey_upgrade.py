"""
Chocolatey package upgrade step for winmaint.

Locates (or installs) choco.exe and upgrades every installed package.
The step is best-effort: nothing it does may stop the Windows Update step,
so every failure is logged and swallowed at the step boundary.
"""

import logging
import os
import shutil
import ssl
import subprocess  # nosec B404
import tempfile
import urllib.request
from typing import Callable, Iterable, List, Optional

from src.i18n import _
from src.winmaint.core.exceptions import PackageManagerError
from src.winmaint.utils.logging_formatter import SUCCESS
from src.winmaint.utils.powershell import POWERSHELL_EXE, creation_flags

logger = logging.getLogger(__name__)

CHOCOLATEY_INSTALL_URL = "https://community.chocolatey.org/install.ps1"
UPGRADE_ARGUMENTS = ["upgrade", "all", "-y", "--no-progress"]

MACHINE_ENVIRONMENT_KEY = r"SYSTEM\CurrentControlSet\Control\Session Manager\Environment"
USER_ENVIRONMENT_KEY = "Environment"


def well_known_locations() -> List[str]:
    """Default Chocolatey install locations, most specific first."""
    program_data = os.environ.get("ProgramData", r"C:\ProgramData")
    locations = [
        os.path.join(program_data, "chocolatey", "bin", "choco.exe"),
        r"C:\ProgramData\chocolatey\bin\choco.exe",
    ]
    return list(dict.fromkeys(locations))


def tls12_context() -> ssl.SSLContext:
    """SSL context that refuses anything older than TLS 1.2."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


def _read_registry_path(hive, key_path: str) -> Optional[str]:
    import winreg  # pylint: disable=import-outside-toplevel,import-error

    try:
        with winreg.OpenKey(hive, key_path) as key:
            value, _value_type = winreg.QueryValueEx(key, "Path")
            return value
    except OSError:
        return None


def read_registry_paths() -> List[str]:
    """Machine and user PATH values as stored in the registry."""
    import winreg  # pylint: disable=import-outside-toplevel,import-error

    values = [
        _read_registry_path(winreg.HKEY_LOCAL_MACHINE, MACHINE_ENVIRONMENT_KEY),
        _read_registry_path(winreg.HKEY_CURRENT_USER, USER_ENVIRONMENT_KEY),
    ]
    return [value for value in values if value]


def merge_path_segments(*path_values: str) -> str:
    """Join PATH values, dropping empty and case-insensitively repeated segments."""
    seen = set()
    merged = []
    for value in path_values:
        for segment in (value or "").split(os.pathsep):
            segment = os.path.expandvars(segment.strip())
            if not segment or segment.lower() in seen:
                continue
            seen.add(segment.lower())
            merged.append(segment)
    return os.pathsep.join(merged)


def _log_output(label: str, text: str, level: int = logging.INFO) -> None:
    for line in text.splitlines():
        if line.strip():
            logger.log(level, "[%s] %s", label, line.rstrip())


class ChocolateyUpgrader:
    """Runs ``choco upgrade all`` once per maintenance run."""

    def __init__(
        self,
        locations: Optional[Iterable[str]] = None,
        registry_paths: Callable[[], List[str]] = read_registry_paths,
        urlopen=urllib.request.urlopen,
    ):
        self.locations = list(locations) if locations is not None else None
        self._registry_paths = registry_paths
        self._urlopen = urlopen

    def resolve_executable(self) -> Optional[str]:
        """
        Find choco.exe.

        Order: well-known install locations, %ChocolateyInstall%, then PATH.
        """
        candidates = list(
            self.locations if self.locations is not None else well_known_locations()
        )
        install_root = os.environ.get("ChocolateyInstall")
        if install_root:
            candidates.append(os.path.join(install_root, "bin", "choco.exe"))

        for candidate in candidates:
            if os.path.isfile(candidate):
                return candidate

        return shutil.which("choco")

    def refresh_path(self) -> None:
        """Merge registry PATH values into this process so a fresh install resolves."""
        os.environ["PATH"] = merge_path_segments(
            *self._registry_paths(), os.environ.get("PATH", "")
        )

    def install_chocolatey(self) -> None:
        """
        Download and run the Chocolatey bootstrap script.

        Raises:
            PackageManagerError: the script could not be fetched or failed.
        """
        logger.info(_("Chocolatey not found, installing from %s"), CHOCOLATEY_INSTALL_URL)
        try:
            with self._urlopen(  # nosec B310 # fixed HTTPS URL
                CHOCOLATEY_INSTALL_URL, timeout=120, context=tls12_context()
            ) as response:
                script = response.read()
        except Exception as error:
            raise PackageManagerError(
                _("Failed to download Chocolatey installer: %s") % error
            ) from error

        script_file = tempfile.NamedTemporaryFile(  # pylint: disable=consider-using-with
            mode="wb", suffix=".ps1", delete=False
        )
        try:
            with script_file:
                script_file.write(script)

            result = subprocess.run(  # nosec B603
                [
                    POWERSHELL_EXE,
                    "-NoProfile",
                    "-NonInteractive",
                    "-ExecutionPolicy",
                    "Bypass",
                    "-File",
                    script_file.name,
                ],
                capture_output=True,
                text=True,
                check=False,
                creationflags=creation_flags(),
            )
        finally:
            _remove_quietly(script_file.name)

        _log_output("choco-install", result.stdout or "")
        _log_output("choco-install", result.stderr or "", logging.WARNING)
        if result.returncode != 0:
            raise PackageManagerError(
                _("Chocolatey installer exited with code %d") % result.returncode
            )

    def run_upgrade(self, executable: str) -> int:
        """
        Upgrade all packages, capturing output in temporary files.

        Output goes to files rather than pipes into the log, then is appended
        to the log once the process has exited. The files are always removed.
        """
        stdout_file = tempfile.NamedTemporaryFile(  # pylint: disable=consider-using-with
            mode="w+", suffix=".out.log", delete=False, encoding="utf-8", errors="replace"
        )
        stderr_file = tempfile.NamedTemporaryFile(  # pylint: disable=consider-using-with
            mode="w+", suffix=".err.log", delete=False, encoding="utf-8", errors="replace"
        )
        try:
            with stdout_file, stderr_file:
                logger.info(
                    _("Running %s %s"), executable, " ".join(UPGRADE_ARGUMENTS)
                )
                result = subprocess.run(  # nosec B603
                    [executable] + UPGRADE_ARGUMENTS,
                    stdout=stdout_file,
                    stderr=stderr_file,
                    check=False,
                    creationflags=creation_flags(),
                )
                stdout_file.seek(0)
                stdout_text = stdout_file.read()
                stderr_file.seek(0)
                stderr_text = stderr_file.read()
        finally:
            _remove_quietly(stdout_file.name)
            _remove_quietly(stderr_file.name)

        _log_output("choco", stdout_text)
        _log_output("choco", stderr_text, logging.WARNING)
        return result.returncode

    def upgrade_packages(self, skip: bool) -> bool:
        """
        Upgrade every Chocolatey package. Never raises.

        Returns:
            True if choco was invoked, False if the step was skipped or
            no executable could be obtained.
        """
        if skip:
            logger.info(_("Skipping Chocolatey package upgrades"))
            return False

        try:
            executable = self.resolve_executable()
            if executable is None:
                self.install_chocolatey()
                self.refresh_path()
                executable = self.resolve_executable()
            if executable is None:
                logger.error(
                    _("Chocolatey is still not available after installation, skipping upgrades")
                )
                return False

            exit_code = self.run_upgrade(executable)
        except Exception as error:  # pylint: disable=broad-exception-caught
            logger.error(_("Chocolatey upgrade failed: %s"), error)
            return False

        if exit_code == 0:
            logger.log(SUCCESS, _("Chocolatey upgrades completed"))
        else:
            logger.warning(_("Chocolatey exited with code %d"), exit_code)
        return True


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as error:
        logger.warning(_("Could not remove temporary file %s: %s"), path, error)

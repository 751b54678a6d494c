"""
Application census for winmaint.

Records which catalog applications are running before the update window,
together with an executable path that can be used to reopen them later.
Path resolution walks a fixed chain of tiers and stops at the first hit:

1. the executable reported by each running process
2. the primary module (first command-line element) of each process
3. the catalog's candidate paths, with user profile wildcards expanded
"""

import glob
import logging
import os
from typing import Callable, List, Optional, Sequence

import psutil

from src.i18n import _
from src.winmaint.collection.application_catalog import DEFAULT_CATALOG, CatalogEntry
from src.winmaint.core.run_state import ApplicationSnapshot

logger = logging.getLogger(__name__)

# Per-process failures that only mean "this attempt found nothing"
PROCESS_INSPECTION_ERRORS = (
    psutil.NoSuchProcess,
    psutil.AccessDenied,
    psutil.ZombieProcess,
    OSError,
)


def matches_identifier(process_name: Optional[str], identifier: str) -> bool:
    """Compare an image name with a catalog identifier, ignoring case and .exe."""
    if not process_name:
        return False
    name = process_name.lower()
    ident = identifier.lower()
    return name in (ident, f"{ident}.exe")


def find_processes(identifier: str) -> List[psutil.Process]:
    """Return every running process whose image name matches the identifier."""
    matches = []
    for proc in psutil.process_iter(["name"]):
        try:
            if matches_identifier(proc.info.get("name"), identifier):
                matches.append(proc)
        except PROCESS_INSPECTION_ERRORS:
            continue
    return matches


def is_process_running(identifier: str) -> bool:
    """Return True if at least one process with this identifier is running."""
    return bool(find_processes(identifier))


def _existing_file(path: Optional[str]) -> Optional[str]:
    if path and os.path.isfile(path):
        return path
    return None


def expand_candidate_path(candidate: str) -> List[str]:
    """Expand environment variables and wildcard segments in a catalog path."""
    expanded = os.path.expandvars(candidate)
    if glob.has_magic(expanded):
        return sorted(glob.glob(expanded))
    return [expanded]


class ApplicationCensus:
    """Builds the pre-update snapshot of running catalog applications."""

    def __init__(
        self,
        catalog: Sequence[CatalogEntry] = DEFAULT_CATALOG,
        process_finder: Callable[[str], List] = find_processes,
    ):
        self.catalog = tuple(catalog)
        self._find_processes = process_finder

    def _path_from_executable(self, processes) -> Optional[str]:
        for proc in processes:
            try:
                path = _existing_file(proc.exe())
            except PROCESS_INSPECTION_ERRORS:
                continue
            if path:
                return path
        return None

    def _path_from_primary_module(self, processes) -> Optional[str]:
        for proc in processes:
            try:
                cmdline = proc.cmdline()
            except PROCESS_INSPECTION_ERRORS:
                continue
            path = _existing_file(cmdline[0] if cmdline else None)
            if path:
                return path
        return None

    def _path_from_catalog(self, entry: CatalogEntry) -> Optional[str]:
        for candidate in entry.candidate_paths:
            for path in expand_candidate_path(candidate):
                if _existing_file(path):
                    return path
        return None

    def resolve_path(self, entry: CatalogEntry, processes) -> Optional[str]:
        """Walk the resolution tiers in order and return the first existing path."""
        resolvers = (
            lambda: self._path_from_executable(processes),
            lambda: self._path_from_primary_module(processes),
            lambda: self._path_from_catalog(entry),
        )
        for resolver in resolvers:
            path = resolver()
            if path:
                return path
        return None

    def take_snapshot(self) -> ApplicationSnapshot:
        """Record running catalog applications and their executable paths."""
        snapshot: ApplicationSnapshot = {}

        for entry in self.catalog:
            identifier = entry.process_identifier
            processes = self._find_processes(identifier)
            if not processes:
                logger.debug("%s is not running", identifier)
                continue

            path = self.resolve_path(entry, processes)
            if path is None:
                logger.warning(
                    _("%s is running but its executable could not be located; it will not be reopened"),
                    identifier,
                )
                continue

            snapshot[identifier] = path
            logger.info(
                _("Found running application %s (%d processes) at %s"),
                identifier,
                len(processes),
                path,
            )

        if not snapshot:
            logger.info(_("No tracked applications are currently running"))
        return snapshot

"""
Catalog of the user applications closed and reopened around an update window.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Tuple

from src.i18n import _


@dataclass(frozen=True)
class CatalogEntry:
    """A tracked application and the places its executable usually lives."""

    process_identifier: str
    candidate_paths: Tuple[str, ...] = field(default_factory=tuple)


# User profile directories are written as C:\Users\* and expanded per profile
DEFAULT_CATALOG: Tuple[CatalogEntry, ...] = (
    CatalogEntry(
        "chrome",
        (
            r"C:\Program Files\Google\Chrome\Application\chrome.exe",
            r"C:\Program Files (x86)\Google\Chrome\Application\chrome.exe",
            r"C:\Users\*\AppData\Local\Google\Chrome\Application\chrome.exe",
        ),
    ),
    CatalogEntry(
        "msedge",
        (
            r"C:\Program Files (x86)\Microsoft\Edge\Application\msedge.exe",
            r"C:\Program Files\Microsoft\Edge\Application\msedge.exe",
        ),
    ),
    CatalogEntry(
        "firefox",
        (
            r"C:\Program Files\Mozilla Firefox\firefox.exe",
            r"C:\Program Files (x86)\Mozilla Firefox\firefox.exe",
        ),
    ),
    CatalogEntry(
        "ms-teams",
        (r"C:\Program Files\WindowsApps\MSTeams_*\ms-teams.exe",),
    ),
    CatalogEntry(
        "Teams",
        (r"C:\Users\*\AppData\Local\Microsoft\Teams\current\Teams.exe",),
    ),
    CatalogEntry(
        "OUTLOOK",
        (
            r"C:\Program Files\Microsoft Office\root\Office16\OUTLOOK.EXE",
            r"C:\Program Files (x86)\Microsoft Office\root\Office16\OUTLOOK.EXE",
        ),
    ),
    CatalogEntry(
        "WINWORD",
        (
            r"C:\Program Files\Microsoft Office\root\Office16\WINWORD.EXE",
            r"C:\Program Files (x86)\Microsoft Office\root\Office16\WINWORD.EXE",
        ),
    ),
    CatalogEntry(
        "EXCEL",
        (
            r"C:\Program Files\Microsoft Office\root\Office16\EXCEL.EXE",
            r"C:\Program Files (x86)\Microsoft Office\root\Office16\EXCEL.EXE",
        ),
    ),
    CatalogEntry(
        "POWERPNT",
        (
            r"C:\Program Files\Microsoft Office\root\Office16\POWERPNT.EXE",
            r"C:\Program Files (x86)\Microsoft Office\root\Office16\POWERPNT.EXE",
        ),
    ),
    CatalogEntry(
        "Zoom",
        (r"C:\Users\*\AppData\Roaming\Zoom\bin\Zoom.exe",),
    ),
    CatalogEntry(
        "slack",
        (r"C:\Users\*\AppData\Local\slack\slack.exe",),
    ),
    CatalogEntry("OneDrive", (r"C:\Program Files\Microsoft OneDrive\OneDrive.exe",)),
)


def catalog_from_config(entries: Iterable[Dict[str, Any]]) -> Tuple[CatalogEntry, ...]:
    """
    Build a catalog from the ``applications`` configuration list.

    Raises:
        ValueError: an entry is malformed or the names repeat.
    """
    catalog: List[CatalogEntry] = []
    seen = set()
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError(_("Application entry must be a mapping: %s") % entry)
        name = entry.get("process_name")
        if not name:
            raise ValueError(_("Application entry without 'process_name': %s") % entry)
        if not isinstance(name, str):
            raise ValueError(_("'process_name' must be a string: %s") % name)
        if name.lower() in seen:
            raise ValueError(_("Duplicate application entry: %s") % name)
        seen.add(name.lower())

        paths = entry.get("candidate_paths") or []
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise ValueError(
                _("'candidate_paths' of %s must be a list of strings") % name
            )
        catalog.append(CatalogEntry(name, tuple(paths)))
    return tuple(catalog)

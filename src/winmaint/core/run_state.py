"""
Per-run state shared between the orchestrator and its steps.
"""

from dataclasses import dataclass, field
from typing import Dict, List

# Process identifier -> executable path recorded before any update activity.
ApplicationSnapshot = Dict[str, str]


@dataclass
class RunResult:
    """Outcome of a single maintenance run, read once for the summary."""

    reboot_required: bool = False
    package_upgrade_attempted: bool = False
    os_update_attempted: bool = False
    applications_restarted: List[str] = field(default_factory=list)

"""
winmaint - unattended Windows maintenance.

Upgrades Chocolatey packages, applies Windows updates and reopens the
user applications that were running before the update window.
"""

__version__ = "1.0.0"

"""
Reaper module.
Contains the stale lock reaper for recovering abandoned jobs.
"""

from queuectl.reaper.main import Reaper

__all__ = ["Reaper"]

"""
Reaper module.
Contains the lease reaper for recovering expired jobs.
"""

from boxsync.reaper.main import Reaper, run

__all__ = ["Reaper", "run"]

"""
Worker module.
Contains the leased worker pool and the job handlers.
"""

from boxsync.worker.main import Worker, run

__all__ = ["Worker", "run"]

"""
Cleaner module.
Contains the periodic deletion of old completed jobs.
"""

from jobqueue.cleaner.main import Cleaner, run

__all__ = ["Cleaner", "run"]

"""
Database-backed job queue.

Producers enqueue typed jobs with an optional delay, group and reference.
Workers poll with the capabilities they offer, atomically claim the best
eligible job and report progress, completion or failure back to the store.
"""

__version__ = "1.0.0"

"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobState(StrEnum):
    """
    Derived job state. Never stored; computed from the timestamps.

    - QUEUED: not claimed
    - IN_PROGRESS: fetched, not completed (may be timed out)
    - COMPLETED: completed is set
    """

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class DuplicatePolicy(StrEnum):
    """Which member of a group of identical pending jobs survives deduplication."""

    OLDEST = "oldest"
    NEWEST = "newest"


# Failure message written when a timed-out claim is taken over
TIMEOUT_FAILURE_MESSAGE = "Restart after timeout"

# Default values
PROGRESS_PRECISION = 2
DUPLICATE_DELETE_BATCH_SIZE = 100

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_JOBS_FINISHED = "jobs_finished_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_TIMEOUT_RECLAIMS = "job_timeout_reclaims_total"
METRIC_CLAIM_CONFLICTS = "job_claim_conflicts_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_REQUEST_JOB = "request_job"
SPAN_EXECUTE_JOB = "execute_job"

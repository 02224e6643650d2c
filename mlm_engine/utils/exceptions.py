"""
Engine exceptions.

Defines categorized exception types for proper error handling.

Cap denials and missing rate-table entries are normal outcomes, not errors:
they are reported as CapDecision(allowed=False) and a None rate.
"""


class MLMEngineError(Exception):
    """Base class for engine errors."""

    pass


class GraphIntegrityError(MLMEngineError):
    """
    Referral graph is corrupt (cycle or dangling sponsor reference).

    Fatal for the single event being processed; needs manual data repair.
    """

    def __init__(self, member_id: int, detail: str) -> None:
        self.member_id = member_id
        self.detail = detail
        super().__init__(f"Referral graph integrity error at member {member_id}: {detail}")


class StorageConflict(MLMEngineError):
    """Transient storage failure; the per-member transaction may be retried."""

    pass


class ValidationError(MLMEngineError):
    """Malformed input; rejected without retry."""

    pass


class BatchAlreadyRunningError(MLMEngineError):
    """Another run of the same batch job holds the run-lock."""

    def __init__(self, lock_name: str) -> None:
        self.lock_name = lock_name
        super().__init__(f"Batch '{lock_name}' is already running")

"""Error taxonomy surfaced by the snapshot and cash managers.

Every error carries a stable ``kind`` and a human readable ``detail`` so the
HTTP layer can render a structured failure without inspecting the type.
"""

from __future__ import annotations


class KpiEngineError(RuntimeError):
    """Base class for structured engine failures."""

    kind = "engine_error"
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, str]:
        return {"error": self.kind, "detail": self.detail}


class UpstreamUnavailable(KpiEngineError):
    """An adapter call failed or timed out."""

    kind = "upstream_unavailable"
    status_code = 503

    def __init__(self, source: str, detail: str) -> None:
        super().__init__(f"{source}: {detail}")
        self.source = source


class ComputationInProgress(KpiEngineError):
    """A concurrent computation was rejected."""

    kind = "computation_in_progress"
    status_code = 409


class PersistenceFailure(KpiEngineError):
    """The store rejected a write."""

    kind = "persistence_failure"
    status_code = 500


class InvalidPeriod(KpiEngineError):
    """A requested reporting period is malformed or out of range."""

    kind = "invalid_period"
    status_code = 422


class SnapshotNotFound(KpiEngineError):
    kind = "snapshot_not_found"
    status_code = 404


__all__ = [
    "KpiEngineError",
    "UpstreamUnavailable",
    "ComputationInProgress",
    "PersistenceFailure",
    "InvalidPeriod",
    "SnapshotNotFound",
]

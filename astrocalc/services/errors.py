"""Error taxonomy shared by the chart engine and the HTTP boundary.

House-system convergence failures are not errors here; they are reported
as data on :class:`~astrocalc.services.houses.HouseResult`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ChartEngineError(Exception):
    """Base class for every error raised by the chart engine."""

    code = "chart_engine_error"

    def __init__(self, message: str, *, details: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ChartEngineError, ValueError):
    """Input rejected before any computation started."""

    code = "validation_error"


class EphemerisRangeError(ChartEngineError):
    """Requested time lies outside the span covered by the ephemeris backend."""

    code = "ephemeris_range_error"

    def __init__(self, message: str, *, jd: Optional[float] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.jd = jd


class InternalComputationError(ChartEngineError):
    """Unexpected numeric or library failure; the whole request is aborted."""

    code = "internal_computation_error"


class ScanCancelled(ChartEngineError):
    """A transit scan was abandoned through its cancellation token."""

    code = "scan_cancelled"


__all__ = [
    "ChartEngineError",
    "EphemerisRangeError",
    "InternalComputationError",
    "ScanCancelled",
    "ValidationError",
]

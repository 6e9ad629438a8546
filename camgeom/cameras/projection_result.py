"""Projection result status reported by the status-returning projection API."""

from enum import Enum


class Status(Enum):
    """Why a projection succeeded or failed."""

    KEYPOINT_VISIBLE = "keypoint_visible"
    KEYPOINT_OUT_OF_BOUNDS = "keypoint_out_of_bounds"
    POINT_BEHIND_CAMERA = "point_behind_camera"
    PROJECTION_INVALID = "projection_invalid"
    UNINITIALIZED = "uninitialized"


class ProjectionResult:
    """
    Immutable outcome of a single projection.

    Two results are equal when their statuses are equal; a result also
    compares equal to a bare ``Status`` member, so callers can write
    ``result == ProjectionResult.POINT_BEHIND_CAMERA``.
    """

    __slots__ = ("_status",)

    Status = Status
    KEYPOINT_VISIBLE = Status.KEYPOINT_VISIBLE
    KEYPOINT_OUT_OF_BOUNDS = Status.KEYPOINT_OUT_OF_BOUNDS
    POINT_BEHIND_CAMERA = Status.POINT_BEHIND_CAMERA
    PROJECTION_INVALID = Status.PROJECTION_INVALID
    UNINITIALIZED = Status.UNINITIALIZED

    def __init__(self, status: Status = Status.UNINITIALIZED):
        object.__setattr__(self, "_status", Status(status))

    def __setattr__(self, name, value):
        raise AttributeError("ProjectionResult is immutable")

    @property
    def status(self) -> Status:
        return self._status

    def get_detailed_status(self) -> Status:
        return self._status

    def is_keypoint_visible(self) -> bool:
        return self._status is Status.KEYPOINT_VISIBLE

    def __bool__(self) -> bool:
        return self.is_keypoint_visible()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ProjectionResult):
            return self._status is other._status
        if isinstance(other, Status):
            return self._status is other
        return NotImplemented

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self) -> int:
        return hash(self._status)

    def __repr__(self) -> str:
        return f"ProjectionResult({self._status.name})"



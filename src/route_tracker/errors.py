"""Error taxonomy for the tracking core."""

from __future__ import annotations


class TrackingError(Exception):
    """Base class for errors raised by the tracking core."""


class PermissionDenied(TrackingError):
    """The positioning capability is unavailable for this session.

    Terminal: the core never retries after this is raised.
    """


class RouteComputationFailed(TrackingError):
    """The routing service could not produce a route (network, service or timeout)."""


class RouteCanceled(TrackingError):
    """A route request was superseded by a newer one. Never shown to the driver."""


class AssignmentsUnavailable(TrackingError):
    """The delivery-assignment backend could not be read."""

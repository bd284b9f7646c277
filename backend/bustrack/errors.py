"""Error taxonomy shared by the core services and the HTTP layer.

Every error carries a human-readable message and the HTTP status the API
layer answers with. Handlers in ``bustrack.main`` turn them into the uniform
``{"success": false, "message": ...}`` body.
"""


class BusTrackError(Exception):
    status_code = 500
    default_message = "Server error. Please try again later."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(BusTrackError):
    status_code = 400
    default_message = "Please provide all required fields"


class AuthenticationError(BusTrackError):
    status_code = 401
    default_message = "Not authorized"


class NotFoundError(BusTrackError):
    status_code = 404
    default_message = "Not found"


class RouteNotFound(NotFoundError):
    def __init__(self, route_number: str) -> None:
        self.route_number = route_number
        super().__init__(f"Route {route_number} not found")


class VehicleNotFound(NotFoundError):
    default_message = "Bus not found"


class DriverNotFound(NotFoundError):
    default_message = "Driver not found"


class ConflictError(BusTrackError):
    status_code = 409
    default_message = "Conflict"


class UpstreamUnavailable(BusTrackError):
    status_code = 502
    default_message = "Upstream service unavailable"


class DiscoveryUnavailable(UpstreamUnavailable):
    """All Overpass mirrors failed.

    ``timed_out`` tells the client whether retrying shortly is worthwhile.
    """

    def __init__(self, timed_out: bool) -> None:
        self.timed_out = timed_out
        if timed_out:
            self.status_code = 503
            message = "Stop discovery timed out. Please retry in a moment."
        else:
            message = "Could not reach the stop discovery service. Check your connection."
        super().__init__(message)


class InternalError(BusTrackError):
    status_code = 500

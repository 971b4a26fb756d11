"""Error taxonomy for the parking session core."""


class ParkingError(Exception):
    """Base class for parking core errors."""

    def __init__(
        self,
        message: str = "Parking error",
        details: dict[str, object] | None = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class NetworkFailure(ParkingError):
    """Raised when the backend could not be reached."""

    def __init__(self, message: str = "Network request failed") -> None:
        super().__init__(message)


class BackendRejection(ParkingError):
    """Raised when the backend answered with an error."""

    def __init__(
        self,
        message: str,
        code: str = "HTTP_ERROR",
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, {"code": code, "status_code": status_code})
        self.code = code
        self.status_code = status_code


class PermissionDenied(ParkingError):
    """Raised when the notification permission was refused."""

    def __init__(self, message: str = "Notification permission denied") -> None:
        super().__init__(message)


class InvalidTransition(ParkingError):
    """Raised when a session operation is not allowed in the current state."""

    def __init__(self, operation: str, state: str) -> None:
        super().__init__(
            f"Cannot {operation} while {state}",
            {"operation": operation, "state": state},
        )
        self.operation = operation
        self.state = state


class OperationCancelled(ParkingError):
    """Raised when a request was superseded before it completed."""

    def __init__(self, generation: int) -> None:
        super().__init__(
            f"Request generation {generation} was cancelled",
            {"generation": generation},
        )
        self.generation = generation

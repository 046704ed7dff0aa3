from typing import Any


class GatewayError(Exception):
    """Base class for errors raised by a record gateway."""


class DoesNotExist(GatewayError):  # noqa: N818
    """Exception raised when a resource does not exist."""

    def __init__(self, resource_type: str, resource_id: int | str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f'{resource_type} with ID "{resource_id!s}" does not exist')


class AlreadyExists(GatewayError):  # noqa: N818
    """Exception raised when a resource already exists."""

    def __init__(self, resource_type: str, resource_id: int | str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f'{resource_type} with ID "{resource_id!s}" already exists')


class GatewayUnavailable(GatewayError):  # noqa: N818
    """
    Exception raised when the backend could not serve a request.

    Args:
        error: The underlying error

    """

    def __init__(self, error: Exception):
        self.error = error
        super().__init__(f"Backend unavailable: {error!s}")


class PersistError(Exception):
    """
    Exception raised when a record could not be persisted.

    Args:
        key: The key of the record
        verb: The last verb attempted (``create`` or ``update``)
        error: The exception the gateway raised

    """

    def __init__(self, key: Any, verb: str, error: Exception):
        self.key = key
        self.verb = verb
        self.error = error
        super().__init__(f'Failed to {verb} record "{key!s}": {error!s}')


class ResyncFailed(Exception):  # noqa: N818
    """
    Exception describing a resync that was abandoned.

    Args:
        attempts: How many fetches were attempted
        error: The error from the last attempt

    """

    def __init__(self, attempts: int, error: Exception):
        self.attempts = attempts
        self.error = error
        super().__init__(f"Resync failed after {attempts} attempt(s): {error!s}")


class UnknownField(KeyError):  # noqa: N818
    """Exception raised when an edit names a field the record does not have."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f'Unknown record field "{field_name}"')

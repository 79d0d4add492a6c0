"""Business Exceptions

Domain-specific exceptions.
"""


class DMException(Exception):
    """Base exception for the Deployment Manager"""

    pass


class ApplicationNotFoundException(DMException):
    """Application is not managed by the DM"""

    pass


class ApplicationAlreadyManagedException(DMException):
    """An application with the same name is already managed"""

    pass


class InstanceNotFoundException(DMException):
    """Instance not found in an application model"""

    pass


class PublishFailure(DMException):
    """A message could not be sent to the bus"""

    def __init__(self, routing_key: str, message: str):
        super().__init__(f"Failed to publish on {routing_key}: {message}")
        self.routing_key = routing_key


class MessageDecodeError(DMException):
    """A wire payload is not a valid message"""

    pass

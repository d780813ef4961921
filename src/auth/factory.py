import logging
import os
from typing import Optional, Type, TypeVar

from .clients.BaseAuthClient import BaseAuthClient

logger = logging.getLogger("auth-factory")

T = TypeVar("T", bound=BaseAuthClient)


def create_auth_client(client_type: Optional[Type[T]] = None) -> BaseAuthClient:
    """
    Factory function to create the appropriate auth client based on environment

    Args:
        client_type: Optional specific client class to instantiate

    Returns:
        An instance of the appropriate BaseAuthClient implementation
    """
    # If client_type is specified, use it directly
    if client_type:
        return client_type()

    # Otherwise, determine from environment
    environment = os.environ.get("ENVIRONMENT", "env").lower()

    if environment == "local":
        from .clients.LocalAuthClient import LocalAuthClient

        return LocalAuthClient()

    if environment != "env":
        logger.warning(
            f"Unknown ENVIRONMENT '{environment}', reading credentials from environment variables"
        )

    # Default to environment variable auth client
    from .clients.EnvironmentAuthClient import EnvironmentAuthClient

    return EnvironmentAuthClient()

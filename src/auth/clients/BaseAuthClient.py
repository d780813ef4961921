import abc
from typing import Dict, Any

# Keys every OAuth config must provide for the client-credentials flow
REQUIRED_OAUTH_KEYS = ("tenant_id", "client_id", "client_secret")


class BaseAuthClient(abc.ABC):
    """
    Abstract base class for authentication config clients.
    Supplies the app registration secrets used to request app-only tokens.
    """

    @abc.abstractmethod
    def get_oauth_config(self, service_name: str) -> Dict[str, Any]:
        """
        Retrieves OAuth configuration for a specific service

        Args:
            service_name: Name of the service (e.g., "sharepoint")

        Returns:
            Dict containing tenant_id, client_id and client_secret. Missing
            values are returned as None and reported by the caller.
        """
        pass

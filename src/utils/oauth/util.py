import time
import asyncio
import logging
import requests

from typing import Dict, List, Any, Callable

from src.auth.factory import create_auth_client
from src.auth.clients.BaseAuthClient import REQUIRED_OAUTH_KEYS


logger = logging.getLogger(__name__)

TOKEN_REQUEST_TIMEOUT = 30


async def request_client_credentials_token(
    service_name: str,
    scopes: List[str],
    token_url_builder: Callable[[Dict[str, Any]], str],
    token_data_builder: Callable[[Dict[str, Any], List[str]], Dict[str, str]],
    process_token_response: Callable[[Dict[str, Any]], Dict[str, Any]] = None,
) -> str:
    """
    Generic app-only token request (OAuth2 client-credentials grant)

    Args:
        service_name: Name of the service (e.g., 'sharepoint')
        scopes: List of OAuth scopes to request
        token_url_builder: Function to build the token endpoint from the OAuth config
        token_data_builder: Function to build token request data
        process_token_response: Optional function to process token response

    Returns:
        A freshly issued access token
    """
    logger = logging.getLogger(service_name)

    # Get auth client
    auth_client = create_auth_client()

    # Get OAuth config
    oauth_config = auth_client.get_oauth_config(service_name)

    missing = [key for key in REQUIRED_OAUTH_KEYS if not oauth_config.get(key)]
    if missing:
        raise ValueError(
            f"Missing OAuth credentials for {service_name}: {', '.join(missing)}"
        )

    token_url = token_url_builder(oauth_config)
    token_data = token_data_builder(oauth_config, scopes)

    logger.info(f"Requesting app-only token from {token_url}")
    response = await asyncio.to_thread(
        requests.post, token_url, data=token_data, timeout=TOKEN_REQUEST_TIMEOUT
    )
    if response.status_code != 200:
        logger.error(f"Token request failed: {response.status_code}")
        raise ValueError(
            f"Failed to acquire access token: {response.status_code} - {response.text}"
        )

    token_response = response.json()

    # Process the token response if needed
    if process_token_response:
        token_response = process_token_response(token_response)
    else:
        # Default processing - add expiry time
        token_response["expires_at"] = int(time.time()) + token_response.get(
            "expires_in", 3600
        )

    access_token = token_response.get("access_token")
    if not access_token:
        raise ValueError(f"Token response for {service_name} has no access_token")

    logger.info(f"Access token acquired, expires at {token_response['expires_at']}")
    return access_token

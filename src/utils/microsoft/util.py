import logging
import time
from typing import Dict, List, Any

from src.utils.oauth.util import request_client_credentials_token


MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
GRAPH_DEFAULT_SCOPES = ["https://graph.microsoft.com/.default"]

logger = logging.getLogger(__name__)


def build_microsoft_token_url(oauth_config: Dict[str, Any]) -> str:
    """Build the tenant-specific token endpoint."""
    return MICROSOFT_TOKEN_URL.format(tenant_id=oauth_config.get("tenant_id"))


def build_microsoft_client_credentials_data(
    oauth_config: Dict[str, Any], scopes: List[str]
) -> Dict[str, str]:
    """Build the token request data for the Microsoft client-credentials grant."""
    return {
        "client_id": oauth_config.get("client_id"),
        "client_secret": oauth_config.get("client_secret"),
        "scope": " ".join(scopes),
        "grant_type": "client_credentials",
    }


def process_microsoft_token_response(token_response: Dict[str, Any]) -> Dict[str, Any]:
    """Add an absolute expiry time to the token response."""
    token_response["expires_at"] = int(time.time()) + int(
        token_response.get("expires_in", 3600)
    )
    return token_response


async def get_credentials(
    service_name: str, scopes: List[str] = GRAPH_DEFAULT_SCOPES
) -> str:
    """Get an app-only Microsoft Graph access token for the service"""
    return await request_client_credentials_token(
        service_name=service_name,
        scopes=scopes,
        token_url_builder=build_microsoft_token_url,
        token_data_builder=build_microsoft_client_credentials_data,
        process_token_response=process_microsoft_token_response,
    )

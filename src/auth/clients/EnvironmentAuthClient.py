import os
import logging
from typing import Dict, Any, Optional

from dotenv import load_dotenv

from .BaseAuthClient import BaseAuthClient, REQUIRED_OAUTH_KEYS

logger = logging.getLogger("EnvironmentAuthClient")


class EnvironmentAuthClient(BaseAuthClient):
    """
    Reads OAuth configs from environment variables named
    <SERVICE>_TENANT_ID, <SERVICE>_CLIENT_ID and <SERVICE>_CLIENT_SECRET.

    A .env file in the working directory is loaded first; variables already
    set in the process environment win.
    """

    def __init__(self, dotenv_path: Optional[str] = None):
        load_dotenv(dotenv_path)

    def get_oauth_config(self, service_name: str) -> Dict[str, Any]:
        prefix = service_name.upper().replace("-", "_")
        logger.info(f"Reading OAuth config for {service_name} from {prefix}_* variables")
        return {
            key: os.environ.get(f"{prefix}_{key.upper()}")
            for key in REQUIRED_OAUTH_KEYS
        }

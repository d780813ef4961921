import os
import json
from pathlib import Path
from typing import Dict, Any, Optional

from .BaseAuthClient import BaseAuthClient

import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("LocalAuthClient")


class LocalAuthClient(BaseAuthClient):
    """
    Implementation of BaseAuthClient that reads OAuth configs from local files.
    Useful for local development and self-hosted installations.

    Each service keeps its config at <oauth_config_base_dir>/<service>/oauth.json.
    """

    def __init__(self, oauth_config_base_dir: Optional[str] = None):
        """
        Initialize the local file auth client

        Args:
            oauth_config_base_dir: Directory containing OAuth config files
        """
        # Get the project root directory
        project_root = Path(__file__).parent.parent.parent.parent

        self.oauth_config_base_dir = oauth_config_base_dir or os.environ.get(
            "SHAREPOINT_MCP_OAUTH_CONFIG_DIR",
            str(project_root / "local_auth" / "oauth_configs"),
        )

    def get_oauth_config(self, service_name: str) -> Dict[str, Any]:
        """Retrieve OAuth configuration from local file"""
        if not self.oauth_config_base_dir:
            raise ValueError("OAuth config directory not set")

        config_path = os.path.join(
            self.oauth_config_base_dir, service_name, "oauth.json"
        )

        if not os.path.exists(config_path):
            raise FileNotFoundError(
                f"OAuth config not found for {service_name} at {config_path}"
            )

        logger.info(f"Loading OAuth config for {service_name} from {config_path}")
        with open(config_path, "r") as f:
            return json.load(f)

"""
Glide tables mutation client

Sets column values on a row through Glide's mutateTables API.
Calls are single-shot: no retry, failures raise GlideError.
"""

import logging
from typing import Dict, Any, Optional

import requests

from .config import glide_timeout

logger = logging.getLogger(__name__)


class GlideError(Exception):
    """Raised when a Glide mutation fails"""
    pass


class GlideClient:
    """Client for the Glide mutateTables endpoint"""

    def __init__(
        self,
        app_id: Optional[str],
        api_secret: Optional[str],
        table_name: str,
        api_url: str = "https://api.glideapp.io/api/function/mutateTables",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        self.app_id = app_id
        self.api_secret = api_secret
        self.table_name = table_name
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config) -> "GlideClient":
        return cls(
            app_id=config.get("GLIDE_APP_ID"),
            api_secret=config.get("GLIDE_API_SECRET"),
            table_name=config.get("GLIDE_TABLE_NAME"),
            api_url=config.get("GLIDE_API_URL"),
            timeout=glide_timeout(config)
        )

    def build_payload(self, row_id: str, column_values: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "appID": self.app_id,
            "mutations": [
                {
                    "kind": "set-columns-in-row",
                    "tableName": self.table_name,
                    "columnValues": column_values,
                    "rowID": row_id
                }
            ]
        }

    def set_columns(self, row_id: str, column_values: Dict[str, Any]) -> None:
        """
        Set column values on a Glide row

        Args:
            row_id: Glide row id
            column_values: Column name -> value

        Raises:
            GlideError: If credentials are missing or the call fails
        """
        if not self.app_id or not self.api_secret:
            raise GlideError("GLIDE_APP_ID and GLIDE_API_SECRET must be configured")

        try:
            response = self.session.post(
                self.api_url,
                json=self.build_payload(row_id, column_values),
                headers={"Authorization": f"Bearer {self.api_secret}"},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Glide mutation failed for row {row_id}: {str(e)}")
            raise GlideError(f"Glide mutation failed: {str(e)}")

        logger.info(f"Updated Glide row {row_id} columns {sorted(column_values)}")

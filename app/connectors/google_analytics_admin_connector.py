"""
app/connectors/google_analytics_admin_connector.py

Google Analytics 4 Admin API connector for property display names.
"""

from __future__ import annotations

import logging

import requests

from app.config import ExternalHTTPSettings, GoogleAnalyticsSettings
from app.connectors.base import BaseConnector

logger = logging.getLogger(__name__)


class GoogleAnalyticsAdminConnector(BaseConnector):
    """
    Looks up property metadata through ``GET properties/{id}``.
    """

    def __init__(
        self,
        *,
        settings: GoogleAnalyticsSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="google_analytics_admin", http_settings=http_settings, session=session)
        self._settings = settings

    def get_display_name(self, property_id: str, credential: str) -> str | None:
        """
        Return the property's ``displayName``, or ``None`` when absent.

        Raises :class:`ConnectorRequestError` on HTTP failures; callers
        decide whether a missing name matters.
        """

        payload = self._request_json(
            method="GET",
            url=f"{self._settings.admin_api_base_url}/properties/{property_id}",
            headers=self.bearer_headers(credential),
        )
        if not isinstance(payload, dict):
            logger.warning("Unexpected Admin API payload shape property=%s", property_id)
            return None
        display_name = str(payload.get("displayName") or "").strip()
        return display_name or None

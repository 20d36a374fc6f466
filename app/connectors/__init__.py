"""
app/connectors package marker.
"""

from app.connectors.base import BaseConnector, ConnectorRequestError
from app.connectors.google_analytics_admin_connector import GoogleAnalyticsAdminConnector
from app.connectors.google_analytics_data_connector import GoogleAnalyticsDataConnector

__all__ = [
    "BaseConnector",
    "ConnectorRequestError",
    "GoogleAnalyticsAdminConnector",
    "GoogleAnalyticsDataConnector",
]

"""Clients for external services."""

from .panel import PANEL_MEDIA_TYPE, PanelClient

__all__ = ["PANEL_MEDIA_TYPE", "PanelClient"]

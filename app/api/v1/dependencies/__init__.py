"""Reusable API dependencies shared across v1 routes."""

from app.api.v1.dependencies.site_access import get_org_site, load_org_site

__all__ = ["get_org_site", "load_org_site"]

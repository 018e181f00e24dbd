"""Service layer."""

from ui_catalog.services.catalog_service import CatalogService

__all__ = ["CatalogService"]

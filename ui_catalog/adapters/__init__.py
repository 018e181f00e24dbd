"""Source adapters: the contract, HTTP transport and concrete adapters."""

from ui_catalog.adapters.base import (
    AdapterRegistry,
    CallableAdapter,
    RequestPacer,
    SourceAdapter,
)
from ui_catalog.adapters.http_client import SiteHttpClient
from ui_catalog.adapters.mock_adapter import StaticAdapter, create_mock_adapters
from ui_catalog.adapters.registry_adapter import RegistryAdapter, build_registry
from ui_catalog.adapters.schemas import RawItem

__all__ = [
    "AdapterRegistry",
    "CallableAdapter",
    "RawItem",
    "RegistryAdapter",
    "RequestPacer",
    "SiteHttpClient",
    "SourceAdapter",
    "StaticAdapter",
    "build_registry",
    "create_mock_adapters",
]

# Overview: Flask extension instances and the long-lived service handles built at startup.

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

if TYPE_CHECKING:
    from .services.bill_service import BillingEngine
    from .services.cache_policy import CacheCoherencePolicy
    from .services.cache_service import KeyValueCache
    from .services.inventory_service import InventoryLedger
    from .services.products_service import ProductCatalog
    from .services.record_store import RecordStore

db = SQLAlchemy()
migrate = Migrate()

EXTENSION_KEY = "smartbill"


@dataclass
class Services:
    """Process-wide handles shared by every request; built once in create_app."""
    store: "RecordStore"
    cache: "KeyValueCache"
    cache_policy: "CacheCoherencePolicy"
    catalog: "ProductCatalog"
    ledger: "InventoryLedger"
    billing: "BillingEngine"


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]

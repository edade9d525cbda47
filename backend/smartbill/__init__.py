# backend/smartbill/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import EXTENSION_KEY, Services, db, migrate


def build_services(app: Flask) -> Services:
    """Construct the long-lived store, cache and service handles for one app."""
    from .services.bill_service import BillNumberGenerator, BillingEngine
    from .services.cache_policy import CacheCoherencePolicy
    from .services.cache_service import build_cache
    from .services.inventory_service import InventoryLedger
    from .services.products_service import ProductCatalog
    from .services.record_store import RecordStore

    store = RecordStore(db.session)
    cache = build_cache(app.config)
    cache_policy = CacheCoherencePolicy(cache)
    catalog = ProductCatalog(store, cache_policy)
    ledger = InventoryLedger(store, cache_policy, catalog)
    billing = BillingEngine(
        store,
        cache_policy,
        ledger,
        number_generator=BillNumberGenerator(prefix=app.config["BILL_NUMBER_PREFIX"]),
        default_tax_percentage=app.config["DEFAULT_TAX_PERCENTAGE"],
        page_size=app.config["BILL_LIST_PAGE_SIZE"],
    )
    return Services(
        store=store,
        cache=cache,
        cache_policy=cache_policy,
        catalog=catalog,
        ledger=ledger,
        billing=billing,
    )


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    logging.getLogger("smartbill").setLevel(app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    app.extensions[EXTENSION_KEY] = build_services(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.bills import bills_bp
    from .routes.cart import cart_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(bills_bp)
    app.register_blueprint(cart_bp)

    @app.before_request
    def log_request():
        app.logger.debug("%s %s", request.method, request.path)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app

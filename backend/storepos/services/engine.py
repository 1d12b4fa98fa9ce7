# Overview: Wires the sale-commit components together and attaches them to the app.

from __future__ import annotations

from dataclasses import dataclass

import redis
from flask import current_app

from .cache import CacheInvalidator, CacheReader, InMemoryCacheBackend, RedisCacheBackend
from .invoice_sequencer import InvoiceSequencer
from .product_query import ProductQuery
from .receivable_manager import ReceivableManager
from .sale_commit import SaleCommitCoordinator
from .sales_query import SalesQuery
from .stock_ledger import StockLedger
from .stock_notifier import InProcessPublisher, RedisPublisher, StockChangeNotifier


EXTENSION_KEY = "storepos.engine"


@dataclass
class SaleEngine:
    ledger: StockLedger
    sequencer: InvoiceSequencer
    receivables: ReceivableManager
    notifier: StockChangeNotifier
    cache: CacheReader
    invalidator: CacheInvalidator
    coordinator: SaleCommitCoordinator
    sales: SalesQuery
    products: ProductQuery
    publisher: object


def build_engine(session, publisher, cache_backend, config) -> SaleEngine:
    """
    Assemble the engine around one session.

    `session` may be a scoped session proxy; each component resolves it per
    call, so one engine serves every request thread.
    """
    ledger = StockLedger(session)
    sequencer = InvoiceSequencer(session)
    receivables = ReceivableManager(session)
    notifier = StockChangeNotifier(publisher)
    invalidator = CacheInvalidator(cache_backend)
    coordinator = SaleCommitCoordinator(
        session,
        ledger=ledger,
        sequencer=sequencer,
        receivables=receivables,
        notifier=notifier,
        invalidator=invalidator,
        retry_attempts=config.get("COMMIT_RETRY_ATTEMPTS", 3),
        retry_backoff=config.get("COMMIT_RETRY_BACKOFF", 0.1),
        invoice_attempts=config.get("INVOICE_RETRY_ATTEMPTS", 5),
    )
    cache = CacheReader(cache_backend, default_ttl=config.get("SALES_CACHE_TTL_SECONDS", 120))
    return SaleEngine(
        ledger=ledger,
        sequencer=sequencer,
        receivables=receivables,
        notifier=notifier,
        cache=cache,
        invalidator=invalidator,
        coordinator=coordinator,
        sales=SalesQuery(session, cache),
        products=ProductQuery(session, cache),
        publisher=publisher,
    )


def init_engine(app) -> SaleEngine:
    from ..extensions import db

    redis_url = app.config.get("REDIS_URL")
    if redis_url:
        client = redis.Redis.from_url(redis_url, decode_responses=True)
        publisher = RedisPublisher(client)
        cache_backend = RedisCacheBackend(client)
        app.logger.info("Sale engine using Redis at %s", redis_url)
    else:
        publisher = InProcessPublisher()
        cache_backend = InMemoryCacheBackend()
        app.logger.info("Sale engine using in-process pub/sub and cache")

    engine = build_engine(db.session, publisher, cache_backend, app.config)
    app.extensions[EXTENSION_KEY] = engine
    return engine


def get_engine() -> SaleEngine:
    return current_app.extensions[EXTENSION_KEY]

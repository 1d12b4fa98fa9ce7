# Overview: Server-sent event stream of stock:update events for a store's terminals.

import json

from flask import Blueprint, Response, current_app, g, stream_with_context

from ..decorators import require_auth, require_role
from ..services.engine import get_engine
from ..services.stock_notifier import STOCK_UPDATE_EVENT, stock_topic

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def format_sse(event: dict) -> str:
    return f"event: {STOCK_UPDATE_EVENT}\ndata: {json.dumps(event)}\n\n"


@stock_bp.get("/stream")
@require_auth
@require_role()
def stock_stream_route():
    """
    Stream stock changes of the caller's store.

    Each committed sale (or undo) emits one `stock:update` event per affected
    product. A comment line is sent every STOCK_STREAM_HEARTBEAT_SECONDS while
    idle so proxies keep the connection open.
    """
    store_id = g.principal.store_id
    heartbeat = current_app.config.get("STOCK_STREAM_HEARTBEAT_SECONDS", 15)
    # Subscribed before the response starts: later commits reach this stream.
    # Closed by the generator, or on response close if the body is never read.
    subscription = get_engine().publisher.subscribe(stock_topic(store_id))
    logger = current_app.logger

    def generate():
        try:
            yield ": connected\n\n"
            while True:
                event = subscription.get(timeout=heartbeat)
                if event is None:
                    yield ": keep-alive\n\n"
                    continue
                yield format_sse(event)
        finally:
            subscription.close()
            logger.debug("Stock stream for store %s closed", store_id)

    response = Response(
        stream_with_context(generate()),
        content_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    response.call_on_close(subscription.close)
    return response

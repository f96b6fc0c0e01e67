import logging
from typing import Optional

import stripe
import uvicorn
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.concurrency import run_in_threadpool

from storefront import stripe_service
from storefront.admin import AdminReadService
from storefront.checkout import CheckoutService, StatusUpdateService
from storefront.config import Settings
from storefront.database import make_session_factory
from storefront.errors import StorefrontError, request_validation_handler, storefront_error_handler
from storefront.logging_config import configure_logging, request_id_middleware
from storefront.orders import OrderStatus
from storefront.routes import router
from storefront.stores import build_store

logger = logging.getLogger(__name__)

WEBHOOK_STATUSES = {
    "payment_intent.succeeded": OrderStatus.SUCCEEDED,
    "payment_intent.payment_failed": OrderStatus.FAILED,
}


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    logger.info("configuration loaded", extra=settings.describe())

    stripe_service.configure_stripe(settings)

    session_factory = None
    if settings.database_url:
        session_factory = make_session_factory(settings.database_url, settings.database_timeout)
    store = build_store(settings.backup_path, session_factory)
    schema = store.database.ensure_schema()
    if schema.error is not None:
        logger.warning("orders table not ready", extra={"error": str(schema.error)})

    app = FastAPI(title="Storefront Checkout Service")
    app.state.settings = settings
    app.state.store = store
    app.state.checkout = CheckoutService(store)
    app.state.status_updates = StatusUpdateService(store)
    app.state.admin = AdminReadService(store, settings)

    app.middleware("http")(request_id_middleware)
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)

    @app.post("/webhook")
    async def stripe_webhook(request: Request, stripe_signature: str = Header(None)):
        if not settings.stripe_webhook_secret:
            raise HTTPException(status_code=503, detail="Webhook not configured")
        payload = await request.body()

        try:
            event = stripe_service.construct_event(
                payload,
                stripe_signature,
                settings.stripe_webhook_secret,
            )
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid payload")
        except stripe.SignatureVerificationError:
            raise HTTPException(status_code=400, detail="Invalid signature")

        status = WEBHOOK_STATUSES.get(event["type"])
        if status is None:
            logger.info("unhandled webhook event", extra={"event_type": event["type"]})
        else:
            intent = event["data"]["object"]
            await run_in_threadpool(app.state.status_updates.update, intent["id"], status.value)

        return {"received": True}

    return app


app = create_app()


def run():
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)

"""FastAPI application factory.

``build_services`` constructs every client once from Settings; ``create_app``
registers routes, then error handlers, then security middleware.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import FastAPI

from storefront import __version__
from storefront.admin.coupons import CouponService
from storefront.admin.events import EventService
from storefront.admin.orders import OrderAdminService
from storefront.admin.review_import import ReviewImporter
from storefront.admin.reviews import ReviewService
from storefront.admin.routes import router as admin_router
from storefront.api import install_error_handlers
from storefront.config import Settings
from storefront.notifications.protocol import EmailSender
from storefront.notifications.resend import ResendSender
from storefront.notifications.service import OrderNotifier
from storefront.notifications.templates import OrganizationInfo
from storefront.orders.ingestion import OrderIngestor
from storefront.orders.refunds import RefundService
from storefront.orders.routes import router as orders_router
from storefront.orders.subscriptions import SubscriptionSync
from storefront.payments.stripe_gateway import PaymentGateway, StripeGateway
from storefront.security import install_security_middleware
from storefront.store.memory import InMemoryStore
from storefront.store.postgres import PostgresStore
from storefront.webhooks.dispatcher import WebhookDispatcher
from storefront.webhooks.handlers import register_webhook_routes
from storefront.webhooks.idempotency import EventLedger

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the routes need, built once per app."""

    settings: Settings
    store: InMemoryStore | PostgresStore
    gateway: PaymentGateway
    notifier: OrderNotifier
    ingestor: OrderIngestor
    subscriptions: SubscriptionSync
    refunds: RefundService
    dispatcher: WebhookDispatcher
    coupons: CouponService
    events: EventService
    reviews: ReviewService
    review_importer: ReviewImporter
    orders: OrderAdminService
    ledger: EventLedger | None = None


def organization_from(settings: Settings) -> OrganizationInfo:
    return OrganizationInfo(
        name=settings.org_name,
        ein=settings.org_ein,
        address=settings.org_address,
        support_email=settings.support_email,
        is_nonprofit=settings.org_is_nonprofit,
    )


def assemble_services(
    settings: Settings,
    store: InMemoryStore | PostgresStore,
    gateway: PaymentGateway,
    sender: EmailSender,
    ledger: EventLedger | None = None,
) -> Services:
    """Wire domain services around already-constructed clients."""
    notifier = OrderNotifier(sender, organization_from(settings), settings.email_from)
    ingestor = OrderIngestor(store, gateway, notifier)
    subscriptions = SubscriptionSync(store, gateway)
    return Services(
        settings=settings,
        store=store,
        gateway=gateway,
        notifier=notifier,
        ingestor=ingestor,
        subscriptions=subscriptions,
        refunds=RefundService(store, gateway),
        dispatcher=WebhookDispatcher(ingestor, subscriptions),
        coupons=CouponService(store),
        events=EventService(store),
        reviews=ReviewService(store),
        review_importer=ReviewImporter(store),
        orders=OrderAdminService(store, notifier),
        ledger=ledger,
    )


def build_services(settings: Settings) -> Services:
    """Construct real clients from settings."""
    if settings.database_url:
        store = PostgresStore(settings.database_url)
        store.ensure_schema()
        logger.info("Using Postgres store")
    else:
        store = InMemoryStore()
        logger.warning("DATABASE_URL not set, using in-memory store")

    ledger = EventLedger.from_url(settings.redis_url) if settings.redis_url else None
    if ledger is None:
        logger.info("REDIS_URL not set, webhook event ledger disabled")

    if not settings.stripe_secret_key:
        logger.warning("STRIPE_SECRET_KEY not set, Stripe calls will fail")
    gateway = StripeGateway(settings.stripe_secret_key, settings.stripe_api_version)
    sender = ResendSender(
        settings.resend_api_key, settings.email_from, api_url=settings.resend_api_url
    )
    return assemble_services(settings, store, gateway, sender, ledger)


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or (services.settings if services else Settings())
    services = services or build_services(settings)

    app = FastAPI(title="Storefront Orders", version=__version__)
    app.state.services = services

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    register_webhook_routes(app)
    app.include_router(orders_router)
    app.include_router(admin_router)
    install_error_handlers(app)
    install_security_middleware(app, settings.admin_api_token, settings.cors_origins)
    return app

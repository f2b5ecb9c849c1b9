"""Wiring of stores, services and gateways for one data directory."""

from dataclasses import dataclass
from pathlib import Path

from .admin import AdminService
from .carts import CartService, WishlistService
from .catalog import CatalogService
from .config import Settings, get_settings
from .lifecycle import OrderLifecycle
from .notifications import NotificationService, Notifier, StoreNotifier
from .orders import OrderService
from .payments import GatewayRegistry, PaymentService, build_registry
from .payments.razorpay_gateway import RazorpayGateway
from .quotations import QuotationService
from .store import DocumentStore
from .subscriptions import SubscriptionService


@dataclass
class Services:
    settings: Settings
    store: DocumentStore
    catalog: CatalogService
    carts: CartService
    wishlists: WishlistService
    lifecycle: OrderLifecycle
    orders: OrderService
    payments: PaymentService
    subscriptions: SubscriptionService
    notifications: NotificationService
    quotations: QuotationService
    admin: AdminService


def build_services(
    settings: Settings | None = None,
    data_dir: Path | None = None,
    gateways: GatewayRegistry | None = None,
    subscription_gateway: RazorpayGateway | None = None,
    notifier: Notifier | None = None,
) -> Services:
    """
    Build the service graph.

    Gateways default to the providers configured in `settings`; the
    subscription gateway defaults to the registered Razorpay gateway.
    """
    settings = settings or get_settings()
    store = DocumentStore(data_dir or settings.data_dir)
    notifier = notifier or StoreNotifier(store)
    gateways = gateways if gateways is not None else build_registry(settings)
    if subscription_gateway is None and "razorpay" in gateways:
        subscription_gateway = gateways.get("razorpay")

    lifecycle = OrderLifecycle(store, notifier)
    return Services(
        settings=settings,
        store=store,
        catalog=CatalogService(store),
        carts=CartService(store),
        wishlists=WishlistService(store),
        lifecycle=lifecycle,
        orders=OrderService(
            store,
            lifecycle,
            notifier,
            tax_rate=settings.tax_rate,
            shipping_rates=settings.shipping_rates,
        ),
        payments=PaymentService(
            store,
            lifecycle,
            gateways,
            manual_requires_approval=settings.upi_requires_admin_approval,
        ),
        subscriptions=SubscriptionService(store, subscription_gateway),
        notifications=NotificationService(store),
        quotations=QuotationService(store),
        admin=AdminService(store),
    )

"""FastAPI REST API for storefront."""

import traceback
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

import structlog
from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from . import __version__
from .auth import CurrentUser, decode_token
from .catalog import Page
from .config import get_settings
from .errors import (
    AuthenticationError,
    ForbiddenError,
    GatewayUnavailableError,
    InsufficientStockError,
    InvalidSchemaVersionError,
    InvalidSignatureError,
    InvalidTransitionError,
    NotFoundError,
    PaymentGatewayError,
    PaymentNotCompletedError,
    StorefrontError,
    SubscriptionExpiredError,
    UnsupportedPaymentOperation,
    ValidationError,
)
from .log import configure_logging
from .models import PAYMENT_COMPLETED, CustomerInfo, Order, Shipping
from .orders import OrderLine
from .services import Services, build_services
from .subscriptions import check_with_grace, subscription_view

logger = structlog.get_logger(__name__)


# --- Pydantic Schemas ---


class VariantSchema(BaseModel):
    name: str
    value: str


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""


class ProductCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(..., ge=0)
    stock: int = Field(..., ge=0)
    category: Optional[str] = None
    images: list[str] = []
    tags: list[str] = []
    sizes: list[str] = []
    variants: list[VariantSchema] = []
    min_order_quantity: int = Field(default=1, ge=1)
    max_order_quantity: Optional[int] = Field(default=None, ge=1)
    featured: bool = False
    discount: float = Field(default=0.0, ge=0, le=100)
    status: str = "active"


class ProductUpdateRequest(BaseModel):
    """Request body for updating a product. Only fields sent are changed."""

    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = None
    images: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    sizes: Optional[list[str]] = None
    variants: Optional[list[VariantSchema]] = None
    min_order_quantity: Optional[int] = Field(default=None, ge=1)
    max_order_quantity: Optional[int] = Field(default=None, ge=1)
    featured: Optional[bool] = None
    discount: Optional[float] = Field(default=None, ge=0, le=100)
    status: Optional[str] = None


class CartItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(default=1, ge=1)
    size: Optional[str] = None
    variants: list[VariantSchema] = []


class CartItemUpdateRequest(BaseModel):
    quantity: int = Field(..., ge=0)
    size: Optional[str] = None


class CustomerInfoSchema(BaseModel):
    name: str
    email: str
    phone: str = ""


class ShippingSchema(BaseModel):
    method: str = "standard"
    address: dict[str, str] = {}


class OrderLineSchema(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    variants: list[VariantSchema] = []


class OrderFromCartRequest(BaseModel):
    """Request body for placing an order from the cart."""

    customer_info: Optional[CustomerInfoSchema] = Field(
        default=None, description="Defaults to the name, email and phone in the token"
    )
    shipping: ShippingSchema = ShippingSchema()
    payment_method: str = "cod"
    notes: Optional[str] = None


class OrderCreateRequest(OrderFromCartRequest):
    items: list[OrderLineSchema] = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str
    note: Optional[str] = None


class RefundRequest(BaseModel):
    amount: Optional[float] = Field(default=None, gt=0, description="Omit for a full refund")


class PaymentOrderRequest(BaseModel):
    order_id: str


class StripeConfirmRequest(BaseModel):
    payment_intent_id: str
    order_id: Optional[str] = None


class RazorpayVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str
    order_id: Optional[str] = None


class UpiCollectRequest(BaseModel):
    order_id: str
    upi_id: str = Field(..., min_length=3)


class UpiVerifyRequest(BaseModel):
    order_id: str
    transaction_id: str
    upi_transaction_id: Optional[str] = None
    upi_id: Optional[str] = None


class SubscriptionOrderRequest(BaseModel):
    plan_type: str


class SubscriptionVerifyRequest(BaseModel):
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str



class QuotationCreateRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    specifications: str = ""
    notes: str = ""
    customer_info: Optional[CustomerInfoSchema] = None


class QuotationResponseRequest(BaseModel):
    status: str
    unit_price: Optional[float] = Field(default=None, gt=0)
    validity_days: int = Field(default=7, ge=1)
    admin_notes: str = ""


class ProductBulkItem(BaseModel):
    id: str
    changes: ProductUpdateRequest


class ProductBulkUpdateRequest(BaseModel):
    updates: list[ProductBulkItem] = Field(..., min_length=1)


# --- Dependencies ---


_services: Optional[Services] = None


def get_services() -> Services:
    """Get the process-wide service graph. Overridden in tests."""
    global _services
    if _services is None:
        _services = build_services(get_settings())
    return _services


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> CurrentUser:
    if credentials is None:
        raise AuthenticationError()
    settings = services.settings
    return decode_token(credentials.credentials, settings.jwt_secret, settings.jwt_algorithm)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


def require_subscribed_admin(
    user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
) -> CurrentUser:
    """Admin with an active subscription, or one still inside the grace period."""
    access = check_with_grace(
        services.subscriptions.for_access(user.id),
        grace_days=services.settings.subscription_grace_days,
    )
    if access.in_grace_period:
        logger.warning("subscription_grace_period", user=user.id)
    return user


# --- Helper Functions ---


def page_to_dict(page: Page, key: str) -> dict[str, Any]:
    return {
        key: [item.to_dict() for item in page.items],
        "page": page.page,
        "limit": page.limit,
        "total": page.total,
        "pages": page.pages,
    }


def _customer_info(schema: Optional[CustomerInfoSchema], user: CurrentUser) -> CustomerInfo:
    if schema is not None:
        return CustomerInfo(name=schema.name, email=schema.email, phone=schema.phone)
    return CustomerInfo(name=user.name, email=user.email, phone=user.phone)


def _payment_summary(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "payment": order.payment.to_dict(),
        "amount": order.pricing.total,
    }


# --- FastAPI App ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json or not settings.is_development)
    logger.info("api_started", environment=settings.environment, version=__version__)
    yield


app = FastAPI(
    title="storefront API",
    description="REST API for the storefront catalog, orders and payments",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_context(request: Request, call_next):
    """Tag every log line of a request with a request id."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12],
        method=request.method,
        path=request.url.path,
    )
    return await call_next(request)


# --- Global Exception Handlers ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    AuthenticationError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    InsufficientStockError: 400,
    InvalidTransitionError: 400,
    InvalidSignatureError: 400,
    UnsupportedPaymentOperation: 400,
    PaymentNotCompletedError: 400,
    PaymentGatewayError: 502,
    GatewayUnavailableError: 503,
    InvalidSchemaVersionError: 500,
}


def _status_code(exc: StorefrontError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    status_code = _status_code(exc)
    content: dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    code = getattr(exc, "code", None)
    if code:
        content["code"] = code
    if isinstance(exc, SubscriptionExpiredError):
        content["data"] = {"end_date": exc.end_date, "grace_period_end": exc.grace_period_end}
    if status_code >= 500:
        logger.error("request_failed", error_type=type(exc).__name__, detail=str(exc))
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = [
        f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"detail": "; ".join(messages), "error_type": "ValidationError"},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", error_type=type(exc).__name__)
    content: dict[str, Any] = {"detail": "Internal server error", "error_type": "InternalError"}
    if get_settings().is_development:
        content["detail"] = str(exc)
        content["traceback"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)


# --- Endpoints ---


@app.get("/api/health")
def health_check(services: Services = Depends(get_services)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": __version__,
        "environment": services.settings.environment,
        "payment_methods": services.payments.gateways.methods(),
    }


# --- Catalog Endpoints ---


@app.get("/api/categories")
def list_categories(services: Services = Depends(get_services)):
    categories = services.catalog.list_categories()
    return {"categories": [c.to_dict() for c in categories], "count": len(categories)}


@app.post("/api/categories", status_code=201)
def create_category(
    request: CategoryCreateRequest,
    services: Services = Depends(get_services),
    admin: CurrentUser = Depends(require_subscribed_admin),
):
    return services.catalog.add_category(request.name, request.description).to_dict()


@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    featured: Optional[bool] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """List products on sale, newest first."""
    result = services.catalog.list_products(
        category=category, search=search, featured=featured, page=page, limit=limit
    )
    return page_to_dict(result, "products")


@app.get("/api/products/{product_id}")
def get_product(product_id: str, services: Services = Depends(get_services)):
    return services.catalog.get_product(product_id).to_dict()


@app.post("/api/products", status_code=201)
def create_product(
    request: ProductCreateRequest,
    services: Services = Depends(get_services),
    admin: CurrentUser = Depends(require_subscribed_admin),
):
    fields = request.model_dump()
    product = services.catalog.add_product(
        title=fields.pop("title"),
        description=fields.pop("description"),
        price=fields.pop("price"),
        stock=fields.pop("stock"),
        category=fields.pop("category"),
        **fields,
    )
    logger.info("product_created", product_id=product.id, by=admin.id)
    return product.to_dict()


@app.put("/api/products/{product_id}")
def update_product(
    product_id: str,
    request: ProductUpdateRequest,
    services: Services = Depends(get_services),
    admin: CurrentUser = Depends(require_subscribed_admin),
):
    changes = request.model_dump(exclude_unset=True)
    return services.catalog.update_product(product_id, **changes).to_dict()


@app.delete("/api/products/{product_id}")
def delete_product(
    product_id: str,
    services: Services = Depends(get_services),
    admin: CurrentUser = Depends(require_subscribed_admin),
):
    """Take a product off sale. Products are never physically deleted."""
    product = services.catalog.deactivate_product(product_id)
    logger.info("product_deactivated", product_id=product_id, by=admin.id)
    return product.to_dict()


# --- Cart & Wishlist Endpoints ---


@app.get("/api/cart")
def get_cart(
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.carts.get_cart(user.id).to_dict()


@app.post("/api/cart/items")
def add_cart_item(
    request: CartItemRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    cart = services.carts.add_item(
        user.id,
        request.product_id,
        quantity=request.quantity,
        size=request.size,
        variants=[v.model_dump() for v in request.variants],
    )
    return cart.to_dict()


@app.put("/api/cart/items/{product_id}")
def update_cart_item(
    product_id: str,
    request: CartItemUpdateRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    cart = services.carts.update_item(user.id, product_id, request.quantity, size=request.size)
    return cart.to_dict()


@app.delete("/api/cart/items/{product_id}")
def remove_cart_item(
    product_id: str,
    size: Optional[str] = None,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.carts.remove_item(user.id, product_id, size=size).to_dict()


@app.delete("/api/cart")
def clear_cart(
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.carts.clear(user.id).to_dict()


@app.get("/api/wishlist")
def get_wishlist(
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.wishlists.get_wishlist(user.id).to_dict()


@app.post("/api/wishlist/{product_id}")
def add_to_wishlist(
    product_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.wishlists.add(user.id, product_id).to_dict()


@app.delete("/api/wishlist/{product_id}")
def remove_from_wishlist(
    product_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.wishlists.remove(user.id, product_id).to_dict()


# --- Order Endpoints ---


@app.post("/api/orders", status_code=201)
def create_order(
    request: OrderCreateRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Place an order. Stock is taken for every line or for none."""
    order = services.orders.create_order(
        customer_id=user.id,
        customer_info=_customer_info(request.customer_info, user),
        lines=[
            OrderLine(
                product_id=line.product_id,
                quantity=line.quantity,
                size=line.size,
                variants=[v.model_dump() for v in line.variants],
            )
            for line in request.items
        ],
        shipping=Shipping(method=request.shipping.method, address=request.shipping.address),
        payment_method=request.payment_method,
        notes=request.notes,
    )
    return order.to_dict()


@app.post("/api/orders/from-cart", status_code=201)
def create_order_from_cart(
    request: OrderFromCartRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    order = services.orders.create_order_from_cart(
        customer_id=user.id,
        customer_info=_customer_info(request.customer_info, user),
        shipping=Shipping(method=request.shipping.method, address=request.shipping.address),
        payment_method=request.payment_method,
        notes=request.notes,
    )
    return order.to_dict()


@app.get("/api/orders")
def list_orders(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """List the caller's orders, newest first."""
    result = services.orders.list_orders(user_id=user.id, status=status, page=page, limit=limit)
    return page_to_dict(result, "orders")


@app.get("/api/orders/stats")
def order_stats(
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.orders.user_stats(user.id).to_dict()


@app.get("/api/orders/track/{order_number}")
def track_order(order_number: str, services: Services = Depends(get_services)):
    """Public order tracking: status, shipping method and history only."""
    return services.orders.track_order(order_number).tracking_dict()


@app.get("/api/orders/{order_id}")
def get_order(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.orders.get_order(order_id, user.id, is_admin=user.is_admin).to_dict()


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(
    order_id: str,
    request: Optional[CancelRequest] = None,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Cancel one of the caller's orders and return its stock."""
    reason = request.reason if request else None
    return services.orders.cancel_order(order_id, user.id, reason).to_dict()


# --- Stripe Endpoints ---


@app.post("/api/payments/stripe/create-payment-intent")
def create_payment_intent(
    request: PaymentOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    initiation = services.payments.initiate("stripe", request.order_id, user.id)
    return {
        "client_secret": initiation.client_secret,
        "payment_intent_id": initiation.reference,
        "amount": initiation.amount,
        "currency": initiation.currency,
        "publishable_key": services.settings.stripe_publishable_key,
    }


@app.post("/api/payments/stripe/create-checkout-session")
def create_checkout_session(
    request: PaymentOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    session = services.payments.create_hosted_session("stripe", request.order_id, user.id)
    return {"session_id": session.session_id, "url": session.url}


@app.post("/api/payments/stripe/confirm-payment")
def confirm_stripe_payment(
    request: StripeConfirmRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    order = services.payments.confirm(
        "stripe", request.payment_intent_id, user.id, order_id=request.order_id
    )
    return {"message": "Payment confirmed", "order": _payment_summary(order)}


@app.get("/api/payments/stripe/session/{session_id}")
def get_checkout_session(
    session_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.payments.get_session("stripe", session_id, user.id, is_admin=user.is_admin)


@app.post("/api/payments/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    services: Services = Depends(get_services),
):
    """Stripe webhook. Authenticated by signature over the raw body."""
    payload = await request.body()
    return await run_in_threadpool(
        services.payments.handle_webhook, "stripe", payload, stripe_signature or ""
    )


# --- Razorpay Endpoints ---


@app.post("/api/payments/razorpay/create-order")
def create_razorpay_order(
    request: PaymentOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    initiation = services.payments.initiate("razorpay", request.order_id, user.id)
    return {
        "razorpay_order_id": initiation.reference,
        "amount": initiation.amount,
        "currency": initiation.currency,
        "key_id": initiation.extra.get("key_id"),
    }


@app.post("/api/payments/razorpay/verify")
def verify_razorpay_payment(
    request: RazorpayVerifyRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    order = services.payments.confirm(
        "razorpay",
        request.razorpay_order_id,
        user.id,
        evidence={
            "payment_id": request.razorpay_payment_id,
            "signature": request.razorpay_signature,
        },
        order_id=request.order_id,
    )
    return {"message": "Payment verified", "order": _payment_summary(order)}


@app.post("/api/payments/razorpay/webhook")
async def razorpay_webhook(
    request: Request,
    razorpay_signature: Optional[str] = Header(default=None, alias="X-Razorpay-Signature"),
    services: Services = Depends(get_services),
):
    payload = await request.body()
    return await run_in_threadpool(
        services.payments.handle_webhook, "razorpay", payload, razorpay_signature or ""
    )


# --- UPI Endpoints ---


@app.post("/api/payments/upi/request/{order_id}")
def create_upi_request(
    order_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Payment link and QR code for paying an order from any UPI app."""
    initiation = services.payments.initiate("upi", order_id, user.id)
    return {
        "transaction_id": initiation.reference,
        "order_id": order_id,
        "amount": initiation.amount / 100,
        "currency": initiation.currency,
        **initiation.extra,
    }


@app.post("/api/payments/upi/collect-qr")
def create_upi_collect_qr(
    request: UpiCollectRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.payments.collect_qr(request.order_id, user.id, request.upi_id)


@app.post("/api/payments/upi/verify")
def verify_upi_payment(
    request: UpiVerifyRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Record a UPI payment reported by the customer.

    Unless auto-approval is configured the order stays pending with its
    payment awaiting verification by an admin.
    """
    order = services.payments.confirm(
        "upi",
        request.transaction_id,
        user.id,
        evidence={
            "upi_transaction_id": request.upi_transaction_id or "",
            "upi_id": request.upi_id or "",
        },
        order_id=request.order_id,
    )
    if order.payment.status == PAYMENT_COMPLETED:
        message = "Payment verified successfully"
    else:
        message = "Payment submitted for verification"
    return {"message": message, "order": _payment_summary(order)}


# --- Subscription Endpoints ---


@app.get("/api/subscriptions/plans")
def list_plans(services: Services = Depends(get_services)):
    return {"plans": services.subscriptions.plans()}


@app.get("/api/subscriptions/current")
def current_subscription(
    user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return subscription_view(services.subscriptions.current(user.id))


@app.get("/api/subscriptions/status")
def subscription_status(
    user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.subscriptions.status(user.id)


@app.post("/api/subscriptions/create-order")
def create_subscription_order(
    request: SubscriptionOrderRequest,
    user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    sub, rzp_order = services.subscriptions.create_order(user.id, request.plan_type)
    return {
        "razorpay_order_id": rzp_order["id"],
        "amount": rzp_order["amount"],
        "currency": rzp_order["currency"],
        "key_id": services.settings.razorpay_key_id,
        "subscription": sub.to_dict(),
    }


@app.post("/api/subscriptions/verify")
def verify_subscription_payment(
    request: SubscriptionVerifyRequest,
    user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    sub = services.subscriptions.verify_payment(
        request.razorpay_order_id,
        request.razorpay_payment_id,
        request.razorpay_signature,
        user_id=user.id,
    )
    return {"message": "Payment verified and subscription activated", "subscription": sub.to_dict()}


@app.post("/api/subscriptions/cancel")
def cancel_subscription(
    user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return services.subscriptions.cancel(user.id).to_dict()


@app.get("/api/subscriptions/payment-history")
def subscription_payment_history(
    user: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return {"payments": services.subscriptions.payment_history(user.id)}


# --- Quotation Endpoints ---


@app.post("/api/quotations", status_code=201)
def request_quotation(
    request: QuotationCreateRequest,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """File a bulk price request. Only B2B customers may ask for quotes."""
    quotation = services.quotations.request_quote(
        customer_id=user.id,
        customer_type=user.customer_type,
        customer_info=_customer_info(request.customer_info, user),
        product_id=request.product_id,
        quantity=request.quantity,
        specifications=request.specifications,
        notes=request.notes,
    )
    return quotation.to_dict()


@app.get("/api/quotations")
def list_my_quotations(
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    quotations = services.quotations.list_for_customer(user.id)
    return {"quotations": [q.to_dict() for q in quotations], "count": len(quotations)}


# --- Admin Endpoints ---


@app.get("/api/admin/orders")
def admin_list_orders(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    result = services.orders.list_orders(status=status, page=page, limit=limit)
    return page_to_dict(result, "orders")


@app.put("/api/admin/orders/{order_id}/status")
def admin_update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    """Confirm, ship or deliver an order. Admins cannot cancel orders."""
    return services.lifecycle.advance(order_id, request.status, request.note).to_dict()


@app.post("/api/admin/orders/{order_id}/approve-upi")
def admin_approve_upi(
    order_id: str,
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    return services.lifecycle.approve_manual_payment(order_id).to_dict()


@app.post("/api/admin/orders/{order_id}/refund")
def admin_refund(
    order_id: str,
    request: Optional[RefundRequest] = None,
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    amount = request.amount if request else None
    return services.payments.refund(order_id, amount)


@app.get("/api/admin/dashboard/stats")
def admin_dashboard_stats(
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    return services.admin.dashboard_stats()


@app.get("/api/admin/customers")
def admin_list_customers(
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    result = services.admin.customers(search=search, page=page, limit=limit)
    return {
        "customers": result.items,
        "page": result.page,
        "limit": result.limit,
        "total": result.total,
        "pages": result.pages,
    }


@app.get("/api/admin/export")
def admin_export(
    kind: str = Query(..., alias="type"),
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    data = services.admin.export(kind)
    logger.info("data_exported", kind=kind, count=len(data), by=admin.id)
    return {"type": kind, "count": len(data), "data": data}


@app.get("/api/admin/products")
def admin_list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    include_inactive: bool = Query(default=True),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    """Catalog as the admin sees it, including products taken off sale."""
    result = services.catalog.list_products(
        category=category,
        search=search,
        include_inactive=include_inactive,
        page=page,
        limit=limit,
    )
    return page_to_dict(result, "products")


@app.put("/api/admin/products/bulk")
def admin_bulk_update_products(
    request: ProductBulkUpdateRequest,
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    products = services.catalog.bulk_update_products(
        [(item.id, item.changes.model_dump(exclude_unset=True)) for item in request.updates]
    )
    return {"products": [p.to_dict() for p in products], "count": len(products)}


@app.get("/api/admin/categories")
def admin_list_categories(
    include_inactive: bool = Query(default=True),
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    categories = services.catalog.list_categories(include_inactive=include_inactive)
    return {"categories": [c.to_dict() for c in categories], "count": len(categories)}


@app.get("/api/admin/quotations")
def admin_list_quotations(
    status: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    result = services.quotations.list_all(status=status, page=page, limit=limit)
    return page_to_dict(result, "quotations")


@app.put("/api/admin/quotations/{quotation_id}/respond")
def admin_respond_quotation(
    quotation_id: str,
    request: QuotationResponseRequest,
    admin: CurrentUser = Depends(require_subscribed_admin),
    services: Services = Depends(get_services),
):
    quotation = services.quotations.respond(
        quotation_id,
        request.status,
        unit_price=request.unit_price,
        validity_days=request.validity_days,
        admin_notes=request.admin_notes,
    )
    return quotation.to_dict()


# --- Notification Endpoints ---


@app.get("/api/notifications")
def list_notifications(
    unread_only: bool = Query(default=False),
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    notifications = services.notifications.list_for_user(user.id, unread_only=unread_only)
    return {
        "notifications": [n.to_dict() for n in notifications],
        "count": len(notifications),
        "unread": sum(1 for n in notifications if not n.read),
    }


@app.put("/api/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str,
    user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.notifications.mark_read(notification_id, user.id).to_dict()

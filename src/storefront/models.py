"""Data models for storefront."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
import uuid


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return _format_time(datetime.now(timezone.utc))


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_time(value: str) -> datetime:
    """Parse an ISO 8601 timestamp written by _utc_now."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _generate_id() -> str:
    """Generate a new document ID."""
    return str(uuid.uuid4())


# Order statuses
PENDING = "pending"
CONFIRMED = "confirmed"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"

ORDER_STATUSES = (PENDING, CONFIRMED, SHIPPED, DELIVERED, CANCELLED)

# Payment statuses
PAYMENT_PENDING = "pending"
PAYMENT_AWAITING_VERIFICATION = "awaiting_verification"
PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_REFUNDED = "refunded"

PAYMENT_METHODS = ("cod", "stripe", "razorpay", "upi")


@dataclass
class Category:
    """A product category."""

    id: str
    name: str
    slug: str
    description: str = ""
    is_active: bool = True
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Category":
        return cls(
            id=data["id"],
            name=data["name"],
            slug=data["slug"],
            description=data.get("description", ""),
            is_active=data.get("is_active", True),
            created_at=data.get("created_at", ""),
        )

    @classmethod
    def create(cls, name: str, description: str = "") -> "Category":
        slug = "-".join(name.lower().split())
        return cls(id=_generate_id(), name=name, slug=slug, description=description)


@dataclass
class Variant:
    """A product variant such as Color=Red."""

    name: str
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Variant":
        return cls(name=data.get("name", ""), value=data.get("value", ""))


@dataclass
class Product:
    """A catalog product with a mutable stock counter."""

    id: str
    title: str
    description: str
    price: float
    stock: int
    category: str | None = None
    images: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    sizes: list[str] = field(default_factory=list)
    variants: list[Variant] = field(default_factory=list)
    min_order_quantity: int = 1
    max_order_quantity: int | None = None
    featured: bool = False
    discount: float = 0.0
    status: str = "active"  # active | inactive | draft
    is_active: bool = True
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "price": self.price,
            "stock": self.stock,
            "category": self.category,
            "images": list(self.images),
            "tags": list(self.tags),
            "sizes": list(self.sizes),
            "variants": [v.to_dict() for v in self.variants],
            "min_order_quantity": self.min_order_quantity,
            "max_order_quantity": self.max_order_quantity,
            "featured": self.featured,
            "discount": self.discount,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", ""),
            price=float(data["price"]),
            stock=int(data["stock"]),
            category=data.get("category"),
            images=list(data.get("images", [])),
            tags=list(data.get("tags", [])),
            sizes=list(data.get("sizes", [])),
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
            min_order_quantity=data.get("min_order_quantity", 1),
            max_order_quantity=data.get("max_order_quantity"),
            featured=data.get("featured", False),
            discount=data.get("discount", 0.0),
            status=data.get("status", "active"),
            is_active=data.get("is_active", True),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @property
    def available(self) -> bool:
        return self.is_active and self.status == "active"


@dataclass
class CartItem:
    product: str
    quantity: int
    size: str | None = None
    variants: list[Variant] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.product,
            "quantity": self.quantity,
            "size": self.size,
            "variants": [v.to_dict() for v in self.variants],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartItem":
        return cls(
            product=data["product"],
            quantity=data["quantity"],
            size=data.get("size"),
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
        )


@dataclass
class Cart:
    """A user's cart. Keyed by user id in the store."""

    user: str
    items: list[CartItem] = field(default_factory=list)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.user,
            "user": self.user,
            "items": [i.to_dict() for i in self.items],
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cart":
        return cls(
            user=data["user"],
            items=[CartItem.from_dict(i) for i in data.get("items", [])],
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class Wishlist:
    user: str
    products: list[str] = field(default_factory=list)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.user,
            "user": self.user,
            "products": list(self.products),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Wishlist":
        return cls(
            user=data["user"],
            products=list(data.get("products", [])),
            updated_at=data.get("updated_at", ""),
        )


@dataclass(frozen=True)
class ProductSnapshot:
    """Catalog fields copied into an order line at creation time."""

    title: str
    price: float
    image: str

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "price": self.price, "image": self.image}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductSnapshot":
        return cls(
            title=data["title"],
            price=float(data["price"]),
            image=data.get("image", ""),
        )


@dataclass
class OrderItem:
    product: str
    product_info: ProductSnapshot
    quantity: int
    price: float  # unit price at order time
    size: str | None = None
    variants: list[Variant] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product": self.product,
            "product_info": self.product_info.to_dict(),
            "quantity": self.quantity,
            "price": self.price,
            "size": self.size,
            "variants": [v.to_dict() for v in self.variants],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product=data["product"],
            product_info=ProductSnapshot.from_dict(data["product_info"]),
            quantity=data["quantity"],
            price=float(data["price"]),
            size=data.get("size"),
            variants=[Variant.from_dict(v) for v in data.get("variants", [])],
        )


@dataclass(frozen=True)
class Pricing:
    """Order totals. Computed once at creation."""

    subtotal: float
    tax: float
    shipping: float
    total: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "shipping": self.shipping,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Pricing":
        return cls(
            subtotal=float(data["subtotal"]),
            tax=float(data["tax"]),
            shipping=float(data["shipping"]),
            total=float(data["total"]),
        )


@dataclass
class Payment:
    method: str = "cod"
    status: str = PAYMENT_PENDING
    transaction_id: str | None = None
    stripe_payment_intent_id: str | None = None
    stripe_session_id: str | None = None
    razorpay_order_id: str | None = None
    razorpay_payment_id: str | None = None
    upi_transaction_id: str | None = None
    upi_id: str | None = None
    paid_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "method": self.method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "stripe_payment_intent_id": self.stripe_payment_intent_id,
            "stripe_session_id": self.stripe_session_id,
            "razorpay_order_id": self.razorpay_order_id,
            "razorpay_payment_id": self.razorpay_payment_id,
            "upi_transaction_id": self.upi_transaction_id,
            "upi_id": self.upi_id,
            "paid_at": self.paid_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Payment":
        return cls(
            method=data.get("method", "cod"),
            status=data.get("status", PAYMENT_PENDING),
            transaction_id=data.get("transaction_id"),
            stripe_payment_intent_id=data.get("stripe_payment_intent_id"),
            stripe_session_id=data.get("stripe_session_id"),
            razorpay_order_id=data.get("razorpay_order_id"),
            razorpay_payment_id=data.get("razorpay_payment_id"),
            upi_transaction_id=data.get("upi_transaction_id"),
            upi_id=data.get("upi_id"),
            paid_at=data.get("paid_at"),
        )


@dataclass(frozen=True)
class StatusEntry:
    """One entry of the append-only order status history."""

    status: str
    updated_at: str
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "updated_at": self.updated_at, "note": self.note}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusEntry":
        return cls(
            status=data["status"],
            updated_at=data["updated_at"],
            note=data.get("note", ""),
        )


@dataclass
class CustomerInfo:
    name: str
    email: str
    phone: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "email": self.email, "phone": self.phone}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CustomerInfo":
        return cls(
            name=data.get("name", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
        )


@dataclass
class Shipping:
    method: str = "standard"
    address: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"method": self.method, "address": dict(self.address)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Shipping":
        return cls(
            method=data.get("method", "standard"),
            address=dict(data.get("address", {})),
        )


@dataclass
class Order:
    """The order aggregate: items, pricing, payment and status history."""

    id: str
    order_number: str
    customer: str
    customer_info: CustomerInfo
    items: list[OrderItem]
    pricing: Pricing
    payment: Payment
    shipping: Shipping
    status: str = PENDING
    status_history: list[StatusEntry] = field(default_factory=list)
    notes: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer": self.customer,
            "customer_info": self.customer_info.to_dict(),
            "items": [i.to_dict() for i in self.items],
            "pricing": self.pricing.to_dict(),
            "payment": self.payment.to_dict(),
            "shipping": self.shipping.to_dict(),
            "status": self.status,
            "status_history": [e.to_dict() for e in self.status_history],
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            order_number=data["order_number"],
            customer=data["customer"],
            customer_info=CustomerInfo.from_dict(data.get("customer_info", {})),
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            pricing=Pricing.from_dict(data["pricing"]),
            payment=Payment.from_dict(data.get("payment", {})),
            shipping=Shipping.from_dict(data.get("shipping", {})),
            status=data.get("status", PENDING),
            status_history=[
                StatusEntry.from_dict(e) for e in data.get("status_history", [])
            ],
            notes=data.get("notes"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    def tracking_dict(self) -> dict[str, Any]:
        """Public tracking view: status, shipping method and history only."""
        return {
            "order_number": self.order_number,
            "status": self.status,
            "shipping_method": self.shipping.method,
            "status_history": [e.to_dict() for e in self.status_history],
            "created_at": self.created_at,
        }


@dataclass
class Notification:
    id: str
    user: str
    type: str
    title: str
    message: str
    order: str | None = None
    read: bool = False
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "order": self.order,
            "read": self.read,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            user=data["user"],
            type=data["type"],
            title=data["title"],
            message=data["message"],
            order=data.get("order"),
            read=data.get("read", False),
            created_at=data.get("created_at", ""),
        )


@dataclass(frozen=True)
class PaymentRecord:
    """One entry of a subscription's payment history."""

    amount: float
    status: str
    razorpay_payment_id: str | None
    description: str
    date: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "status": self.status,
            "razorpay_payment_id": self.razorpay_payment_id,
            "description": self.description,
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentRecord":
        return cls(
            amount=float(data["amount"]),
            status=data["status"],
            razorpay_payment_id=data.get("razorpay_payment_id"),
            description=data.get("description", ""),
            date=data.get("date", ""),
        )


@dataclass
class Subscription:
    """Admin-tier SaaS access record."""

    id: str
    user: str
    plan: str
    plan_details: dict[str, Any]
    amount: float
    currency: str
    start_date: str
    end_date: str
    status: str = "pending"  # pending | active | cancelled | expired
    razorpay_order_id: str | None = None
    razorpay_payment_id: str | None = None
    payment_status: str = PAYMENT_PENDING
    auto_renew: bool = True
    payment_history: list[PaymentRecord] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "plan": self.plan,
            "plan_details": dict(self.plan_details),
            "amount": self.amount,
            "currency": self.currency,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "status": self.status,
            "razorpay_order_id": self.razorpay_order_id,
            "razorpay_payment_id": self.razorpay_payment_id,
            "payment_status": self.payment_status,
            "auto_renew": self.auto_renew,
            "payment_history": [p.to_dict() for p in self.payment_history],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Subscription":
        return cls(
            id=data["id"],
            user=data["user"],
            plan=data["plan"],
            plan_details=dict(data.get("plan_details", {})),
            amount=float(data["amount"]),
            currency=data.get("currency", "INR"),
            start_date=data["start_date"],
            end_date=data["end_date"],
            status=data.get("status", "pending"),
            razorpay_order_id=data.get("razorpay_order_id"),
            razorpay_payment_id=data.get("razorpay_payment_id"),
            payment_status=data.get("payment_status", PAYMENT_PENDING),
            auto_renew=data.get("auto_renew", True),
            payment_history=[
                PaymentRecord.from_dict(p) for p in data.get("payment_history", [])
            ],
            created_at=data.get("created_at", ""),
        )


# Quotation statuses
QUOTE_PENDING = "pending"
QUOTE_QUOTED = "quoted"
QUOTE_REJECTED = "rejected"

QUOTATION_STATUSES = (QUOTE_PENDING, QUOTE_QUOTED, QUOTE_REJECTED)


@dataclass(frozen=True)
class QuotedPrice:
    unit_price: float
    total_price: float
    valid_until: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "valid_until": self.valid_until,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuotedPrice":
        return cls(
            unit_price=float(data["unit_price"]),
            total_price=float(data["total_price"]),
            valid_until=data["valid_until"],
        )


@dataclass
class QuotationRequest:
    """A B2B customer's request for a bulk price on one product."""

    id: str
    customer: str
    customer_info: CustomerInfo
    product: str
    product_info: ProductSnapshot
    quantity: int
    specifications: str = ""
    notes: str = ""
    status: str = QUOTE_PENDING
    quoted_price: QuotedPrice | None = None
    admin_notes: str = ""
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "customer": self.customer,
            "customer_info": self.customer_info.to_dict(),
            "product": self.product,
            "product_info": self.product_info.to_dict(),
            "quantity": self.quantity,
            "specifications": self.specifications,
            "notes": self.notes,
            "status": self.status,
            "quoted_price": self.quoted_price.to_dict() if self.quoted_price else None,
            "admin_notes": self.admin_notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuotationRequest":
        quoted = data.get("quoted_price")
        return cls(
            id=data["id"],
            customer=data["customer"],
            customer_info=CustomerInfo.from_dict(data.get("customer_info", {})),
            product=data["product"],
            product_info=ProductSnapshot.from_dict(data["product_info"]),
            quantity=int(data["quantity"]),
            specifications=data.get("specifications", ""),
            notes=data.get("notes", ""),
            status=data.get("status", QUOTE_PENDING),
            quoted_price=QuotedPrice.from_dict(quoted) if quoted else None,
            admin_notes=data.get("admin_notes", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

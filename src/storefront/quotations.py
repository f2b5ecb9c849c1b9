"""Quotation requests: B2B customers ask for a bulk price, admins answer."""

from datetime import timedelta

import structlog

from .auth import CUSTOMER_B2B
from .catalog import Page, paginate
from .errors import ForbiddenError, ValidationError
from .models import (
    QUOTATION_STATUSES,
    QUOTE_QUOTED,
    QUOTE_REJECTED,
    CustomerInfo,
    Notification,
    ProductSnapshot,
    QuotationRequest,
    QuotedPrice,
    _format_time,
    _generate_id,
    _parse_time,
    _utc_now,
)
from .store import DocumentStore

logger = structlog.get_logger(__name__)

DEFAULT_VALIDITY_DAYS = 7

# Statuses an admin can answer with
RESPONSE_STATUSES = frozenset({QUOTE_QUOTED, QUOTE_REJECTED})


class QuotationService:
    def __init__(self, store: DocumentStore):
        self.store = store

    def request_quote(
        self,
        customer_id: str,
        customer_type: str,
        customer_info: CustomerInfo,
        product_id: str,
        quantity: int,
        specifications: str = "",
        notes: str = "",
    ) -> QuotationRequest:
        """
        File a quotation request for one product.

        Raises:
            ForbiddenError: If the customer is not a B2B account.
            ValidationError: If quantity is below 1.
            NotFoundError: If the product doesn't exist.
        """
        if customer_type != CUSTOMER_B2B:
            raise ForbiddenError("Only B2B customers can request quotations")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="quantity")

        with self.store.transaction() as txn:
            product = txn.require("products", product_id, "Product")
            images = product.get("images", [])
            quotation = QuotationRequest(
                id=_generate_id(),
                customer=customer_id,
                customer_info=customer_info,
                product=product_id,
                product_info=ProductSnapshot(
                    title=product["title"],
                    price=float(product["price"]),
                    image=images[0] if images else "",
                ),
                quantity=quantity,
                specifications=specifications,
                notes=notes,
            )
            txn.insert("quotations", quotation.to_dict())

        logger.info(
            "quotation_requested",
            quotation_id=quotation.id,
            customer=customer_id,
            product=product_id,
            quantity=quantity,
        )
        return quotation

    def list_for_customer(self, customer_id: str) -> list[QuotationRequest]:
        docs = self.store.read().find("quotations", lambda d: d["customer"] == customer_id)
        quotations = [QuotationRequest.from_dict(d) for d in docs]
        return sorted(quotations, key=lambda q: q.created_at, reverse=True)

    def list_all(self, status: str | None = None, page: int = 1, limit: int = 10) -> Page:
        """All quotation requests, newest first. `status` "all" or None matches any."""
        if status not in (None, "all") and status not in QUOTATION_STATUSES:
            raise ValidationError(f"Unknown quotation status '{status}'", field="status")
        docs = self.store.read().find(
            "quotations", lambda d: status in (None, "all") or d["status"] == status
        )
        quotations = sorted(
            (QuotationRequest.from_dict(d) for d in docs),
            key=lambda q: q.created_at,
            reverse=True,
        )
        return paginate(quotations, page, limit)

    def respond(
        self,
        quotation_id: str,
        status: str,
        unit_price: float | None = None,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        admin_notes: str = "",
    ) -> QuotationRequest:
        """
        Answer a quotation request and notify the customer.

        A "quoted" answer needs a unit price; the total and the validity date
        are derived from it. A request can be answered again, for instance to
        revise a price.

        Raises:
            NotFoundError: If the request doesn't exist.
            ValidationError: On an unknown status, a missing or non-positive
                unit price, or a validity below one day.
        """
        if status not in RESPONSE_STATUSES:
            raise ValidationError(
                f"Status must be one of: {', '.join(sorted(RESPONSE_STATUSES))}",
                field="status",
            )
        if status == QUOTE_QUOTED:
            if unit_price is None or unit_price <= 0:
                raise ValidationError("A quote needs a positive unit price", field="unit_price")
            if validity_days < 1:
                raise ValidationError(
                    "Validity must be at least one day", field="validity_days"
                )

        with self.store.transaction() as txn:
            doc = txn.require("quotations", quotation_id, "Quotation request")
            quotation = QuotationRequest.from_dict(doc)
            now = _utc_now()
            quotation.status = status
            quotation.admin_notes = admin_notes
            if status == QUOTE_QUOTED:
                quotation.quoted_price = QuotedPrice(
                    unit_price=float(unit_price),
                    total_price=round(unit_price * quotation.quantity, 2),
                    valid_until=_format_time(_parse_time(now) + timedelta(days=validity_days)),
                )
            else:
                quotation.quoted_price = None
            quotation.updated_at = now
            txn.put("quotations", quotation.to_dict())

            title = "Quotation ready" if status == QUOTE_QUOTED else "Quotation declined"
            txn.insert(
                "notifications",
                Notification(
                    id=_generate_id(),
                    user=quotation.customer,
                    type=f"quotation_{status}",
                    title=title,
                    message=(
                        f"Your quotation request for {quotation.quantity} x "
                        f"{quotation.product_info.title} was {status}."
                    ),
                ).to_dict(),
            )

        logger.info("quotation_answered", quotation_id=quotation.id, status=status)
        return quotation

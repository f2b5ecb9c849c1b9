"""Manual UPI payments: payment links and QR codes, confirmed by the customer."""

import base64
import io
import time
from typing import Any, Mapping
from urllib.parse import quote, urlencode

import qrcode
import qrcode.image.svg

from ..errors import UnsupportedPaymentOperation, ValidationError
from ..models import Order
from ..pricing import to_minor_units
from .protocol import (
    ASSURANCE_MANUAL,
    HostedSession,
    PaymentConfirmation,
    PaymentInitiation,
    WebhookEvent,
)


def _query(params: dict[str, str]) -> str:
    return urlencode(params, quote_via=quote, safe="@")


def qr_data_uri(data: str) -> str:
    """Render `data` as an SVG QR code and return it as a data URI."""
    image = qrcode.make(
        data,
        image_factory=qrcode.image.svg.SvgPathImage,
        box_size=10,
        border=2,
    )
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def new_transaction_ref(order_id: str) -> str:
    return f"TXN_{int(time.time() * 1000)}_{order_id}"


class UpiGateway:
    """UPI deep links with no provider to confirm against.

    Confirmations carry ASSURANCE_MANUAL: the customer reports the UPI
    transaction id and nothing can be verified automatically.
    """

    name = "upi"
    reference_field = "transaction_id"
    refund_reference_field = None

    def __init__(self, merchant_upi_id: str, merchant_name: str, currency: str = "INR"):
        self.merchant_upi_id = merchant_upi_id
        self.merchant_name = merchant_name
        self.currency = currency

    def _require_merchant(self) -> None:
        if not self.merchant_upi_id:
            raise ValidationError("Merchant UPI id is not configured")

    def build_pay_link(self, amount: float, transaction_ref: str, note: str) -> str:
        self._require_merchant()
        params = {
            "pa": self.merchant_upi_id,
            "pn": self.merchant_name,
            "am": f"{amount:.2f}",
            "cu": self.currency,
            "tn": note,
            "tr": transaction_ref,
        }
        return f"upi://pay?{_query(params)}"

    def build_collect_link(
        self, payer_upi_id: str, amount: float, order_id: str, transaction_ref: str
    ) -> str:
        """Build a collect request link addressed to the payer's UPI id."""
        if not payer_upi_id:
            raise ValidationError("UPI id is required", field="upi_id")
        params = {
            "pa": payer_upi_id,
            "pn": self.merchant_name,
            "am": f"{amount:.2f}",
            "cu": self.currency,
            "tn": f"Order {order_id}",
            "tr": transaction_ref,
        }
        return f"upi://collect?{_query(params)}"

    def initiate(self, order: Order) -> PaymentInitiation:
        if order.pricing.total <= 0:
            raise ValidationError("Invalid order amount")
        ref = new_transaction_ref(order.id)
        description = f"Payment for Order #{order.order_number}"
        link = self.build_pay_link(order.pricing.total, ref, description)
        return PaymentInitiation(
            provider=self.name,
            reference=ref,
            reference_field=self.reference_field,
            amount=to_minor_units(order.pricing.total),
            currency=self.currency,
            extra={
                "upi_link": link,
                "qr_code": qr_data_uri(link),
                "merchant_upi": self.merchant_upi_id,
                "merchant_name": self.merchant_name,
                "description": description,
            },
        )

    def create_hosted_session(self, order: Order) -> HostedSession:
        raise UnsupportedPaymentOperation(self.name, "hosted checkout sessions")

    def confirm(
        self, reference: str, evidence: Mapping[str, str] | None = None
    ) -> PaymentConfirmation:
        """Accept the customer's report. `evidence` may hold upi_transaction_id and upi_id."""
        evidence = evidence or {}
        refs = {
            key: evidence[key]
            for key in ("upi_transaction_id", "upi_id")
            if evidence.get(key)
        }
        return PaymentConfirmation(
            provider=self.name,
            reference=reference,
            status="reported",
            succeeded=True,
            transaction_id=reference,
            assurance=ASSURANCE_MANUAL,
            refs=refs,
        )

    def verify_webhook(self, payload: bytes, signature: str) -> WebhookEvent:
        raise UnsupportedPaymentOperation(self.name, "webhooks")

    def refund(self, reference: str, amount: float | None = None) -> dict[str, Any]:
        raise UnsupportedPaymentOperation(self.name, "refunds")

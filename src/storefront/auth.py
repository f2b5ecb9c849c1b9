"""Bearer token handling. Tokens are issued by the external user service."""

from dataclasses import dataclass

from jose import JWTError, jwt

from .errors import AuthenticationError

ROLE_ADMIN = "admin"
ROLE_CUSTOMER = "customer"

CUSTOMER_B2B = "B2B"
CUSTOMER_B2C = "B2C"


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str = ROLE_CUSTOMER
    name: str = ""
    email: str = ""
    phone: str = ""
    customer_type: str = CUSTOMER_B2C

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_b2b(self) -> bool:
        return self.customer_type == CUSTOMER_B2B


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> CurrentUser:
    """
    Verify a JWT and return the user it names.

    Raises:
        AuthenticationError: If the token is invalid, expired or has no subject.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as exc:
        raise AuthenticationError("Invalid or expired token") from exc
    subject = payload.get("sub")
    if not subject:
        raise AuthenticationError("Token has no subject")
    return CurrentUser(
        id=str(subject),
        role=payload.get("role", ROLE_CUSTOMER),
        name=payload.get("name", ""),
        email=payload.get("email", ""),
        phone=payload.get("phone", ""),
        customer_type=payload.get("customer_type", CUSTOMER_B2C),
    )


"""storefront - e-commerce order, payment and subscription backend."""

__version__ = "0.1.0"

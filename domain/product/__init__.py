"""Product domain exports."""
from .entity import BillingInterval, Product
from .repository import ProductRepository

__all__ = ["BillingInterval", "Product", "ProductRepository"]

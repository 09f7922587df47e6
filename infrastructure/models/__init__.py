"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .payment import PaymentModel
from .product import ProductModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "PaymentModel",
    "ProductModel",
]

from . import cart
from . import health
from . import products

__all__ = [
    "cart",
    "health",
    "products",
]

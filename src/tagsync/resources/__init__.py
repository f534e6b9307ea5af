"""Resource module exports."""

from .customers import Customers
from .segments import Segments

__all__ = [
    "Customers",
    "Segments",
]

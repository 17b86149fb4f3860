"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the finance domain models used by ``spend_insights``.
"""

from .finance import Base, Budget, Category, Subcategory, Transaction

__all__ = [
    "Base",
    "Budget",
    "Category",
    "Subcategory",
    "Transaction",
]

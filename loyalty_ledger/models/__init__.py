"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from loyalty_ledger.models.customers import Customer

__all__ = [
    "Customer",
]

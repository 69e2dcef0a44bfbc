"""
Database Models
"""
from tollvault.db.models.transaction import Transaction

__all__ = [
    "Transaction",
]

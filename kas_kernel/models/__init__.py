"""
ORM models for the entity store.

Import this package before ``create_tables`` so every mapper is registered.
"""

from kas_kernel.models.payment import PaymentModel
from kas_kernel.models.student import StudentModel
from kas_kernel.models.transaction import TransactionModel

__all__ = ["PaymentModel", "StudentModel", "TransactionModel"]

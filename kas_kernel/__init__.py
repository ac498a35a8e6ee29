"""
Kas Kernel - shared cash fund core

Record-keeping kernel for a student cohort's cash fund:
- Typed records for students, dues payments and ledger transactions
- Entity store with a change-notification feed
- Linked-transaction immutability guard
- Structured logging and a coded exception hierarchy
"""

__version__ = "0.1.0"

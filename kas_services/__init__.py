"""
Services for the cash fund: commands, the admin gate, spreadsheet export and
the application shell that wires them together.
"""

from kas_services.app_shell import FundApplication
from kas_services.auth_service import AuthService, LoginResult, LoginStatus, require_admin
from kas_services.commands import (
    ApprovalDecision,
    BulkImportResult,
    DeleteStudentResult,
    FundCommandService,
    RecordedPayment,
    RowError,
)

__all__ = [
    "ApprovalDecision",
    "AuthService",
    "BulkImportResult",
    "DeleteStudentResult",
    "FundApplication",
    "FundCommandService",
    "LoginResult",
    "LoginStatus",
    "RecordedPayment",
    "RowError",
    "require_admin",
]

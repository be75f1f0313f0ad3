"""
Custom Exceptions for SIMS
==========================

Raised inside the auth provider, the file host client and the upload
flow. Access services never let these escape: they are converted into
empty reads or ``{"success": False, "error": ...}`` results. Routers map
the ones that do reach them (validation, auth) to HTTP responses.

Usage:
    from sims.core.exceptions import InvalidFileTypeError

    if mime_type not in allowed:
        raise InvalidFileTypeError(mime_type, allowed)
"""

from typing import Optional, Any, Dict, List


class SIMSError(Exception):
    """Base exception for all SIMS errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication Errors
# ============================================

class AuthenticationError(SIMSError):
    """Authentication failed"""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class InvalidCredentialsError(AuthenticationError):
    """Email/password pair rejected"""

    def __init__(self):
        super().__init__("Invalid login credentials")
        self.code = "INVALID_CREDENTIALS"


class EmailNotConfirmedError(AuthenticationError):
    """Account exists but the signup confirmation code was never exchanged"""

    def __init__(self):
        super().__init__("Email not confirmed")
        self.code = "EMAIL_NOT_CONFIRMED"


class EmailAlreadyRegisteredError(AuthenticationError):
    """Signup with an email that already has a credential"""

    def __init__(self):
        super().__init__("User already registered")
        self.code = "EMAIL_TAKEN"


class InvalidTokenError(AuthenticationError):
    """Token is invalid, expired or revoked"""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)
        self.code = "INVALID_TOKEN"


class InvalidAuthCodeError(AuthenticationError):
    """Confirmation/recovery code unknown, expired or already used"""

    def __init__(self):
        super().__init__("Invalid or expired code")
        self.code = "INVALID_CODE"


class NotAuthenticatedError(AuthenticationError):
    """Operation needs a session and none exists"""

    def __init__(self):
        super().__init__("No user logged in")
        self.code = "NOT_AUTHENTICATED"


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(SIMSError):
    """Base class for not found errors"""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class ProfileNotFoundError(ResourceNotFoundError):
    """Role profile (student/faculty row) missing for a user"""

    def __init__(self, role: str, user_id: str):
        super().__init__(f"{role.capitalize()}Profile", user_id)


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(SIMSError):
    """Input validation failed"""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class FileTooLargeError(ValidationError):
    """Upload exceeds the size limit"""

    def __init__(self, size: int, max_size: int):
        super().__init__(
            f"File size must be less than {max_size // 1024 // 1024}MB",
            field="file"
        )
        self.code = "FILE_TOO_LARGE"
        self.details.update({"size": size, "max_size": max_size})


class InvalidFileTypeError(ValidationError):
    """File type not allowed"""

    def __init__(self, file_type: str, allowed_types: List[str]):
        super().__init__(
            "File type not supported. Please upload PDF, DOC, DOCX, TXT, images, or ZIP files.",
            field="file"
        )
        self.code = "INVALID_FILE_TYPE"
        self.details.update({"file_type": file_type, "allowed_types": allowed_types})


# ============================================
# File Host Errors
# ============================================

class FileHostError(SIMSError):
    """File host operation failed"""

    def __init__(self, message: str):
        super().__init__(message, code="FILE_HOST_ERROR")


class FileHostNotConfiguredError(FileHostError):
    """Cloud name / preset / signing keys missing"""

    def __init__(self, what: str = "upload"):
        super().__init__(f"File host is not configured for {what}")
        self.code = "FILE_HOST_NOT_CONFIGURED"


class FileUploadError(FileHostError):
    """Upload rejected by the file host"""

    def __init__(self, message: str = "Unknown error"):
        super().__init__(f"Upload failed: {message}")
        self.code = "FILE_UPLOAD_FAILED"


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: SIMSError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }

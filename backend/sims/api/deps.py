from typing import Any, Dict, Optional

from fastapi import HTTPException, Request, status

from sims.services.file_host import CloudinaryClient


def get_file_host(request: Request) -> CloudinaryClient:
    return request.app.state.file_host


def ensure_success(
    result: Dict[str, Any],
    status_code: int = status.HTTP_400_BAD_REQUEST,
    error_statuses: Optional[Dict[str, int]] = None,
) -> Dict[str, Any]:
    """
    Turn a ``{"success": False, "error": ...}`` service result into an HTTP error.

    A result tagged with an ``error_code`` listed in ``error_statuses`` gets
    that status; "... not found" errors are 404; anything else is
    ``status_code``.
    """
    if not result.get("success"):
        error = result.get("error") or "Request failed"
        error_code = result.get("error_code")
        if error_statuses and error_code in error_statuses:
            status_code = error_statuses[error_code]
        elif error.endswith("not found") and ":" not in error:
            status_code = status.HTTP_404_NOT_FOUND
        raise HTTPException(status_code=status_code, detail=error)
    return result

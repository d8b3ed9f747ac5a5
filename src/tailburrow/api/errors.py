"""领域错误 -> HTTP 状态码."""

from fastapi import HTTPException

from tailburrow.core.errors import (
    AlreadyRunningError,
    AuthenticationError,
    CredentialsMissingError,
    InvalidOptionsError,
    LibraryNotConfiguredError,
    NotRunningError,
    TailburrowError,
)

STATUS_CODES: dict[type[TailburrowError], int] = {
    AlreadyRunningError: 409,
    AuthenticationError: 401,
    NotRunningError: 409,
    InvalidOptionsError: 400,
    LibraryNotConfiguredError: 400,
    CredentialsMissingError: 400,
}


def http_error(e: TailburrowError) -> HTTPException:
    """转换为 HTTPException，未列出的错误返回 502."""
    for error_type, status_code in STATUS_CODES.items():
        if isinstance(e, error_type):
            return HTTPException(status_code=status_code, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))

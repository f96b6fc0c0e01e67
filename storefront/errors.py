from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class StorefrontError(Exception):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(StorefrontError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class InvalidPriceError(StorefrontError):
    status_code = 400
    default_code = "INVALID_PRICE"


class GatewayError(StorefrontError):
    default_code = "GATEWAY_ERROR"

    def __init__(self, message: str, code: str | None = None, status_code: int = 500):
        super().__init__(message, code)
        self.status_code = status_code


class AuthError(StorefrontError):
    status_code = 401
    default_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class PersistenceError(StorefrontError):
    """Store failure. Logged by the caller, never sent to clients."""

    default_code = "PERSISTENCE_ERROR"


async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "code": exc.code},
    )


async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({
        ".".join(str(part) for part in err.get("loc", ())[1:]) or "body"
        for err in exc.errors()
    })
    error = ValidationError("Invalid request fields: " + ", ".join(fields))
    return await storefront_error_handler(request, error)

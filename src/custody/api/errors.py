"""HTTP mapping for custody errors.

Protean's own handlers (``register_exception_handlers``) already cover
ValidationError (400) and ObjectNotFoundError (404); this module adds the
custody taxonomy on top.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from custody.errors import (
    Conflict,
    CustodyError,
    ForbiddenActor,
    ForbiddenAssignment,
    ForbiddenTransition,
    InvalidToken,
    RetryableError,
    StaleOrOutOfOrderScan,
)

_STATUS_CODES = {
    InvalidToken: 400,
    ForbiddenTransition: 403,
    ForbiddenActor: 403,
    ForbiddenAssignment: 403,
    Conflict: 409,
    StaleOrOutOfOrderScan: 409,
    RetryableError: 503,
}

# Same mapping keyed by error code, for outcomes that carry a code instead of an exception
CODE_STATUS = {cls.code: status for cls, status in _STATUS_CODES.items()}


def status_for(exc: CustodyError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_CODES:
            return _STATUS_CODES[cls]
    return 400


def register_custody_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CustodyError)
    async def custody_error_handler(request: Request, exc: CustodyError) -> JSONResponse:
        return JSONResponse(status_code=status_for(exc), content={"error": exc.to_dict()})

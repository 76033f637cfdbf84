from fastapi import HTTPException

from ..constants import ErrorKind
from ..exceptions import CouponEngineError


STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.EXHAUSTED: 409,
    ErrorKind.TRANSIENT: 500,
}


def to_http_exception(error: CouponEngineError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_KIND[error.kind],
        detail={
            "kind": error.kind.value,
            "code": error.code,
            "message": error.message,
        },
    )

from fastapi import (
    APIRouter,
    Depends,
)
from typing import (
    Annotated,
)

from ..dependencies import (
    get_coupon_service,
    get_owner_id,
    require_user_id,
)
from ..exceptions import (
    CouponEngineError,
)
from ..models import (
    CodeActionRequest,
    LockResponse,
    RedeemResponse,
)
from ..services.coupon_service import (
    CouponService,
)
from .errors import to_http_exception


router = APIRouter()


@router.post("/lock")
def lock_code(
    body: CodeActionRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    user_id: Annotated[str, Depends(require_user_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> LockResponse:
    """
    Hold an assigned code for a redemption attempt.

    Headers required:
    - X-Owner-Id: partner scope
    - X-User-Id: the user the code is assigned to
    """
    try:
        return coupon_service.lock(owner_id, body.code, user_id, book_id=body.book_id)
    except CouponEngineError as e:
        raise to_http_exception(e)


@router.post("/redeem")
def redeem_code(
    body: CodeActionRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    user_id: Annotated[str, Depends(require_user_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> RedeemResponse:
    """
    Redeem a code the user currently holds a lock on.
    """
    try:
        return coupon_service.redeem(owner_id, body.code, user_id, book_id=body.book_id)
    except CouponEngineError as e:
        raise to_http_exception(e)

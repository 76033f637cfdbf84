from fastapi import (
    APIRouter,
    Depends,
)
from typing import (
    Annotated,
)

from ..dependencies import (
    get_coupon_service,
)
from ..exceptions import (
    CouponEngineError,
)
from ..models import (
    SweepResponse,
)
from ..services.coupon_service import (
    CouponService,
)
from .errors import to_http_exception


router = APIRouter()


@router.post("/sweep")
def sweep_expired_locks(
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> SweepResponse:
    """Run the unlock sweep now instead of waiting for the background thread."""
    try:
        return SweepResponse(unlocked=coupon_service.sweep_expired_locks())
    except CouponEngineError as e:
        raise to_http_exception(e)

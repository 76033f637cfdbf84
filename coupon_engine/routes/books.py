from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
)
from typing import (
    Annotated,
    List,
    Optional,
)

from ..dependencies import (
    get_coupon_service,
    get_owner_id,
    get_user_id,
)
from ..exceptions import (
    CouponEngineError,
)
from ..models import (
    AddCodesRequest,
    AssignRequest,
    AssignResponse,
    BookCreateRequest,
    BookCreateResponse,
    BookResponse,
    CodeResponse,
    RedemptionResponse,
    UserCodeResponse,
)
from ..services.coupon_service import (
    CouponService,
)
from .errors import to_http_exception


router = APIRouter()


@router.post("/")
def create_book(
    body: BookCreateRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> BookCreateResponse:
    try:
        return coupon_service.create_book(owner_id, body)
    except CouponEngineError as e:
        raise to_http_exception(e)


@router.get("/{book_id}")
def get_book(
    book_id: str,
    owner_id: Annotated[str, Depends(get_owner_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> BookResponse:
    try:
        return coupon_service.get_book(owner_id, book_id)
    except CouponEngineError as e:
        raise to_http_exception(e)


@router.post("/{book_id}/codes")
def add_codes(
    book_id: str,
    body: AddCodesRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> List[CodeResponse]:
    """
    Add manual codes and/or generate random ones.

    Manual codes are committed before generation starts; if generation then
    fails the manual codes stay in the book.
    """
    try:
        return coupon_service.add_codes(owner_id, book_id, body)
    except CouponEngineError as e:
        raise to_http_exception(e)


@router.post("/{book_id}/assign")
def assign_code(
    book_id: str,
    body: AssignRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    header_user_id: Annotated[Optional[str], Depends(get_user_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> AssignResponse:
    """
    Assign a specific code (`code` set) or a random free code to a user.

    The user comes from `X-User-Id`, or from `user_id` in the body when a
    partner assigns on behalf of a user.
    """
    user_id = body.user_id or header_user_id
    if not user_id:
        raise HTTPException(status_code=422, detail="user_id is required")
    try:
        return coupon_service.assign(owner_id, book_id, user_id, code=body.code)
    except CouponEngineError as e:
        raise to_http_exception(e)


@router.get("/{book_id}/users/{user_id}/codes")
def list_user_codes(
    book_id: str,
    user_id: str,
    owner_id: Annotated[str, Depends(get_owner_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> List[UserCodeResponse]:
    try:
        return coupon_service.list_user_codes(owner_id, book_id, user_id)
    except CouponEngineError as e:
        raise to_http_exception(e)


@router.get("/{book_id}/codes/{code}/redemptions")
def list_redemptions(
    book_id: str,
    code: str,
    owner_id: Annotated[str, Depends(get_owner_id)],
    coupon_service: Annotated[
        CouponService,
        Depends(get_coupon_service),
    ],
) -> List[RedemptionResponse]:
    try:
        return coupon_service.list_redemptions(owner_id, book_id, code)
    except CouponEngineError as e:
        raise to_http_exception(e)

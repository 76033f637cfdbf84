from functools import lru_cache
from typing import (
    Annotated,
    Optional,
)

from fastapi import (
    Depends,
    Header,
    HTTPException,
)
from sqlalchemy.orm import (
    Session,
    sessionmaker,
)

from .database.database import (
    create_db_engine,
    create_session_factory,
)
from .services.coupon_service import (
    CouponService,
)
from .settings import (
    Settings,
)


@lru_cache
def get_settings():
    return Settings()


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    return create_session_factory(create_db_engine(get_settings().database_url))


def get_coupon_service(
    session_factory: Annotated[
        sessionmaker[Session],
        Depends(get_session_factory),
    ],
) -> CouponService:
    return CouponService(
        session_factory,
        get_settings,
    )


def get_owner_id(
    owner_id: Annotated[
        Optional[str],
        Header(alias="X-Owner-Id"),
    ] = None,
) -> str:
    """Partner scope, set by the authentication proxy in front of the API."""
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing X-Owner-Id header")
    return owner_id


def get_user_id(
    user_id: Annotated[
        Optional[str],
        Header(alias="X-User-Id"),
    ] = None,
) -> Optional[str]:
    return user_id or None


def require_user_id(
    user_id: Annotated[
        Optional[str],
        Depends(get_user_id),
    ],
) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return user_id

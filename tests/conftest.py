import os

# Test-only routers are registered at import time of coupon_engine.main
os.environ["ENV"] = "test"

from datetime import (
    UTC,
    datetime,
    timedelta,
)

import pytest

from coupon_engine.database.database import (
    create_db_engine,
    create_session_factory,
)
from coupon_engine.database.entities import (
    Base,
    Code,
)
from coupon_engine.models import (
    AddCodesRequest,
    BookCreateRequest,
    ManualCode,
)
from coupon_engine.services.coupon_service import CouponService
from coupon_engine.settings import Settings


OWNER_ID = "partner-1"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'coupons.db'}")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        unlock_sweep_enabled=False,
    )


@pytest.fixture
def clock():
    return FrozenClock(datetime(2030, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def coupon_service(session_factory, settings, clock):
    return CouponService(
        session_factory,
        lambda: settings,
        clock=clock,
    )


def create_book(
    coupon_service: CouponService,
    max_codes_per_user: int = 2,
    max_redeem_count_per_user: int | None = 1,
    owner_id: str = OWNER_ID,
) -> str:
    response = coupon_service.create_book(
        owner_id,
        BookCreateRequest(
            name="Summer campaign",
            max_codes_per_user=max_codes_per_user,
            max_redeem_count_per_user=max_redeem_count_per_user,
        ),
    )
    return response.book_id


def add_manual_codes(
    coupon_service: CouponService,
    book_id: str,
    *codes: str,
    expiration: datetime | None = None,
):
    return coupon_service.add_codes(
        OWNER_ID,
        book_id,
        AddCodesRequest(
            manual=[ManualCode(code=code, expiration=expiration) for code in codes]
        ),
    )


def load_code(session_factory, book_id: str, code: str) -> Code:
    with session_factory() as db:
        return db.query(Code).filter_by(book_id=book_id, code=code).one()


def count_codes(session_factory, book_id: str) -> int:
    with session_factory() as db:
        return db.query(Code).filter_by(book_id=book_id).count()


@pytest.fixture
def book_id(coupon_service):
    return create_book(coupon_service)

from typing import (
    Optional,
)
from sqlalchemy.orm import (
    Session,
)

from coupon_engine.constants import RowLock
from coupon_engine.database.database import apply_row_lock
from coupon_engine.database.entities import (
    Book,
)


class BookService:
    """
    Read/write access to Book rows. Books are immutable once created.
    """

    def __init__(
        self,
        db: Session,
    ):
        self.db = db

    def create_book(
        self,
        owner_id: str,
        name: str,
        max_codes_per_user: int,
        max_redeem_count_per_user: Optional[int] = None,
    ) -> Book:
        book = Book(
            owner_id=owner_id,
            name=name,
            max_codes_per_user=max_codes_per_user,
            max_redeem_count_per_user=max_redeem_count_per_user,
        )
        self.db.add(book)
        self.db.flush()
        return book

    def get_book(
        self,
        book_id: str,
        owner_id: Optional[str] = None,
        lock: Optional[RowLock] = None,
    ) -> Optional[Book]:
        """
        Fetch a book, optionally scoped to an owner and read under a row lock.
        """
        query = self.db.query(Book).filter(Book.id == book_id)
        if owner_id is not None:
            query = query.filter(Book.owner_id == owner_id)
        return apply_row_lock(query, lock).first()

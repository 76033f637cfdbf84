from collections import defaultdict
from datetime import (
    datetime,
)
from typing import (
    Iterable,
    List,
    Optional,
)
from sqlalchemy import (
    func,
    or_,
)
from sqlalchemy.orm import (
    Session,
)

from coupon_engine.constants import RowLock
from coupon_engine.database.database import apply_row_lock
from coupon_engine.database.entities import (
    Book,
    Code,
)


def _chunks(items: list, size: int) -> Iterable[list]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class CodeService:
    """
    Read/write access to Code rows: lookups by book, assignee and lock expiry,
    row locks on read, and the bulk unlock used by the sweep.
    """

    def __init__(
        self,
        db: Session,
        chunk_size: int = 500,
    ):
        self.db = db
        self.chunk_size = chunk_size

    def get_code(
        self,
        book_id: str,
        code: str,
        lock: Optional[RowLock] = None,
    ) -> Optional[Code]:
        query = self.db.query(Code).filter(
            Code.book_id == book_id,
            Code.code == code,
        )
        return apply_row_lock(query, lock).first()

    def find_assigned(
        self,
        owner_id: str,
        code: str,
        user_id: str,
        book_id: Optional[str] = None,
        lock: Optional[RowLock] = None,
    ) -> List[Code]:
        """
        Codes with this text assigned to `user_id` in any of the owner's books,
        or in `book_id` only when given.
        """
        query = (
            self.db.query(Code)
            .join(Book, Book.id == Code.book_id)
            .filter(
                Book.owner_id == owner_id,
                Code.code == code,
                Code.assigned_to == user_id,
            )
        )
        if book_id is not None:
            query = query.filter(Code.book_id == book_id)
        if lock == RowLock.UPDATE:
            # Lock the code rows only; the book is read separately
            query = query.populate_existing().with_for_update(of=Code)
        else:
            query = apply_row_lock(query, lock)
        return query.order_by(Code.book_id).all()

    def count_assigned(
        self,
        book_id: str,
        user_id: str,
    ) -> int:
        return (
            self.db.query(func.count())
            .select_from(Code)
            .filter(
                Code.book_id == book_id,
                Code.assigned_to == user_id,
            )
            .scalar()
        ) or 0

    def list_unassigned_codes(
        self,
        book_id: str,
        now: datetime,
    ) -> List[str]:
        """Texts of unassigned, unexpired codes. Read without locks."""
        rows = (
            self.db.query(Code.code)
            .filter(
                Code.book_id == book_id,
                Code.assigned_to.is_(None),
                or_(
                    Code.expiration.is_(None),
                    Code.expiration > now,
                ),
            )
            .all()
        )
        return [row.code for row in rows]

    def list_codes_for_user(
        self,
        book_id: str,
        user_id: str,
    ) -> List[Code]:
        return (
            self.db.query(Code)
            .filter(
                Code.book_id == book_id,
                Code.assigned_to == user_id,
            )
            .order_by(Code.assigned_at.asc(), Code.code.asc())
            .all()
        )

    def existing_codes(
        self,
        book_id: str,
        candidates: Iterable[str],
    ) -> set[str]:
        """Subset of `candidates` already persisted in the book."""
        found: set[str] = set()
        for chunk in _chunks(sorted(set(candidates)), self.chunk_size):
            rows = (
                self.db.query(Code.code)
                .filter(
                    Code.book_id == book_id,
                    Code.code.in_(chunk),
                )
                .all()
            )
            found.update(row.code for row in rows)
        return found

    def add_codes(
        self,
        codes: List[Code],
    ) -> List[Code]:
        self.db.add_all(codes)
        self.db.flush()
        return codes

    def list_expired_locks(
        self,
        now: datetime,
    ) -> List[tuple[str, str]]:
        rows = (
            self.db.query(Code.book_id, Code.code)
            .filter(
                Code.locked_until.is_not(None),
                Code.locked_until < now,
            )
            .all()
        )
        return [(row.book_id, row.code) for row in rows]

    def unlock(
        self,
        keys: List[tuple[str, str]],
        now: datetime,
    ) -> int:
        """
        Clear `locked_until` for the given (book_id, code) keys. Rows re-locked
        since they were selected are left alone.
        """
        by_book: dict[str, list[str]] = defaultdict(list)
        for book_id, code in keys:
            by_book[book_id].append(code)

        unlocked = 0
        for book_id, codes in by_book.items():
            for chunk in _chunks(codes, self.chunk_size):
                unlocked += (
                    self.db.query(Code)
                    .filter(
                        Code.book_id == book_id,
                        Code.code.in_(chunk),
                        Code.locked_until < now,
                    )
                    .update(
                        {Code.locked_until: None},
                        synchronize_session=False,
                    )
                )
        return unlocked

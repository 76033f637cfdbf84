import secrets
from collections import Counter
from contextlib import contextmanager
from datetime import (
    datetime,
    timedelta,
)
from typing import (
    Any,
    Callable,
    Iterator,
    List,
    Optional,
    Sequence,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import (
    Session,
    sessionmaker,
)

from coupon_engine.clock import (
    Clock,
    as_utc,
    utc_now,
)
from coupon_engine.constants import RowLock
from coupon_engine.database.database import session_scope
from coupon_engine.database.entities import (
    Book,
    Code,
)
from coupon_engine.exceptions import (
    AddCodesFailed,
    AlreadyAssigned,
    AlreadyLocked,
    AmbiguousCode,
    AssignFailed,
    AssignRetriesExhausted,
    BookNotFound,
    CodeExpired,
    CodeNotAssigned,
    CodeNotAssignedOrNotLocked,
    CodeNotFound,
    CouponEngineError,
    LockFailed,
    ManualCollision,
    NoCodesAvailable,
    QuotaExceeded,
    RedeemFailed,
    RedeemLimitReached,
    SweepFailed,
    TransientError,
)
from coupon_engine.logging_utils import get_logger
from coupon_engine.models import (
    AddCodesRequest,
    AssignResponse,
    BookCreateRequest,
    BookCreateResponse,
    BookResponse,
    CodeResponse,
    GenerationSpec,
    LockResponse,
    ManualCode,
    RedeemResponse,
    RedemptionResponse,
    UserCodeResponse,
)
from coupon_engine.services.book_service import BookService
from coupon_engine.services.code_generator import CodeGenerator
from coupon_engine.services.code_service import CodeService
from coupon_engine.services.redeem_log_service import RedeemLogService


logger = get_logger(__name__)


class CouponService:
    """
    Runs every coupon operation as one transaction against the book and code
    tables.

    Each public method opens its own session, reads and locks what it needs,
    validates, performs at most one state change and commits. Engine errors
    pass through unchanged; anything else rolls back, is logged, and is
    reported as the operation's generic failure.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        get_settings: Callable,
        clock: Clock = utc_now,
        choice: Callable[[Sequence[Any]], Any] = secrets.choice,
    ):
        self.session_factory = session_factory
        self.get_settings = get_settings
        self.clock = clock
        self.choice = choice

    @property
    def lock_duration(self) -> timedelta:
        """Get lock duration from settings dynamically."""
        return self.get_settings().lock_duration

    @property
    def assign_max_attempts(self) -> int:
        return self.get_settings().assign_max_attempts

    @contextmanager
    def _operation(
        self,
        name: str,
        failure: type[TransientError],
        **context,
    ) -> Iterator[Session]:
        try:
            with session_scope(self.session_factory) as db:
                yield db
        except CouponEngineError as e:
            logger.info(f"{name} rejected: {e.code}", extra={"operation": name, **context, **e.context})
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error in {name}: {e}",
                exc_info=True,
                extra={"operation": name, **context},
            )
            raise failure(context=context) from e

    def _now(self) -> datetime:
        return as_utc(self.clock())

    # Books

    def create_book(
        self,
        owner_id: str,
        request: BookCreateRequest,
    ) -> BookCreateResponse:
        with self._operation("create_book", TransientError, owner_id=owner_id) as db:
            book = BookService(db).create_book(
                owner_id=owner_id,
                name=request.name,
                max_codes_per_user=request.max_codes_per_user,
                max_redeem_count_per_user=request.max_redeem_count_per_user,
            )
            book_id = book.id
        logger.info(f"Created book {book_id} for owner {owner_id}")
        return BookCreateResponse(book_id=book_id)

    def get_book(
        self,
        owner_id: str,
        book_id: str,
    ) -> BookResponse:
        with self._operation("get_book", TransientError, book_id=book_id) as db:
            book = self._require_book(db, owner_id, book_id)
            return BookResponse.model_validate(book)

    # Codes

    def add_codes(
        self,
        owner_id: str,
        book_id: str,
        request: AddCodesRequest,
    ) -> List[CodeResponse]:
        """
        Insert manual codes, then generate more, in two transactions. A failed
        generation does not undo manual codes committed by the first one.
        """
        results: List[CodeResponse] = []
        if request.manual:
            with self._operation("add_codes", AddCodesFailed, book_id=book_id) as db:
                book = self._require_book(db, owner_id, book_id)
                codes = self._insert_manual(db, book, request.manual)
                results.extend(CodeResponse.model_validate(code) for code in codes)
            logger.info(f"Added {len(request.manual)} manual codes to book {book_id}")

        if request.generated is not None:
            with self._operation("add_codes", AddCodesFailed, book_id=book_id) as db:
                book = self._require_book(db, owner_id, book_id)
                codes = self._generate(db, book, request.generated)
                results.extend(CodeResponse.model_validate(code) for code in codes)

        return results

    def _insert_manual(
        self,
        db: Session,
        book: Book,
        manual: List[ManualCode],
    ) -> List[Code]:
        settings = self.get_settings()
        code_service = CodeService(db, chunk_size=settings.lookup_chunk_size)

        texts = [item.code for item in manual]
        duplicates = {text for text, count in Counter(texts).items() if count > 1}
        collisions = sorted(duplicates | code_service.existing_codes(book.id, texts))
        if collisions:
            raise ManualCollision(
                f"Codes already exist in this book: {', '.join(collisions[:20])}",
                context={"book_id": book.id, "collisions": len(collisions)},
            )

        codes = [
            Code(
                code=item.code,
                book_id=book.id,
                expiration=item.expiration,
                redeemed_count=0,
            )
            for item in manual
        ]
        try:
            return code_service.add_codes(codes)
        except IntegrityError as e:
            # Inserted concurrently between the lookup and the flush
            raise ManualCollision(context={"book_id": book.id}) from e

    def _generate(
        self,
        db: Session,
        book: Book,
        spec: GenerationSpec,
    ) -> List[Code]:
        settings = self.get_settings()
        generator = CodeGenerator(
            CodeService(db, chunk_size=settings.lookup_chunk_size),
            max_rounds=settings.generation_max_rounds,
            warning_ratio=settings.generation_warning_ratio,
            choice=self.choice,
        )
        return generator.generate(
            book_id=book.id,
            amount=spec.amount,
            prefix=spec.prefix,
            code_length=spec.code_length,
            expiration=spec.expiration,
        )

    # Assign

    def assign(
        self,
        owner_id: str,
        book_id: str,
        user_id: str,
        code: Optional[str] = None,
    ) -> AssignResponse:
        with self._operation(
            "assign", AssignFailed, book_id=book_id, user_id=user_id
        ) as db:
            # Exclusive book lock serializes quota checks within the book
            book = self._require_book(db, owner_id, book_id, lock=RowLock.UPDATE)
            code_service = CodeService(db)

            assigned = code_service.count_assigned(book.id, user_id)
            if assigned >= book.max_codes_per_user:
                raise QuotaExceeded(
                    context={"assigned": assigned, "max": book.max_codes_per_user}
                )

            now = self._now()
            if code is not None:
                target = self._assign_specific(code_service, book, user_id, code, now)
            else:
                target = self._assign_random(code_service, book, user_id, now)
            assigned_code = target.code

        logger.info(f"Assigned code {assigned_code} in book {book_id} to {user_id}")
        return AssignResponse(code=assigned_code)

    def _assign_specific(
        self,
        code_service: CodeService,
        book: Book,
        user_id: str,
        code: str,
        now: datetime,
    ) -> Code:
        row = code_service.get_code(book.id, code, lock=RowLock.UPDATE)
        if row is None:
            raise CodeNotFound(context={"code": code})
        if row.assigned_to is not None:
            raise AlreadyAssigned(context={"code": code})
        if self._is_expired(row, now):
            raise CodeExpired(context={"code": code})
        self._mark_assigned(row, user_id, now)
        return row

    def _assign_random(
        self,
        code_service: CodeService,
        book: Book,
        user_id: str,
        now: datetime,
    ) -> Code:
        max_attempts = self.assign_max_attempts
        for attempt in range(1, max_attempts + 1):
            available = code_service.list_unassigned_codes(book.id, now)
            if not available:
                raise NoCodesAvailable()

            candidate = self.choice(available)
            row = code_service.get_code(book.id, candidate, lock=RowLock.UPDATE)
            if row is not None and row.assigned_to is None:
                self._mark_assigned(row, user_id, now)
                return row

            logger.info(
                f"Code {candidate} in book {book.id} was assigned concurrently, "
                f"retrying ({attempt}/{max_attempts})"
            )
        raise AssignRetriesExhausted(context={"attempts": max_attempts})

    @staticmethod
    def _mark_assigned(row: Code, user_id: str, now: datetime) -> None:
        row.assigned_to = user_id
        row.assigned_at = now

    # Lock / redeem

    def lock(
        self,
        owner_id: str,
        code: str,
        user_id: str,
        book_id: Optional[str] = None,
    ) -> LockResponse:
        with self._operation(
            "lock", LockFailed, code=code, user_id=user_id, book_id=book_id
        ) as db:
            row = self._find_assigned(db, owner_id, code, user_id, book_id)
            if row is None:
                raise CodeNotAssigned()

            book = self._require_book(db, None, row.book_id, lock=RowLock.SHARE)
            if self._redeem_limit_reached(book, row):
                raise RedeemLimitReached()

            now = self._now()
            if self._is_locked(row, now):
                raise AlreadyLocked()
            if self._is_expired(row, now):
                raise CodeExpired()

            locked_until = now + self.lock_duration
            row.locked_until = locked_until

        logger.info(f"Locked code {code} in book {row.book_id} until {locked_until.isoformat()}")
        return LockResponse(locked_until=locked_until)

    def redeem(
        self,
        owner_id: str,
        code: str,
        user_id: str,
        book_id: Optional[str] = None,
    ) -> RedeemResponse:
        with self._operation(
            "redeem", RedeemFailed, code=code, user_id=user_id, book_id=book_id
        ) as db:
            row = self._find_assigned(db, owner_id, code, user_id, book_id)
            now = self._now()
            if row is None or not self._is_locked(row, now):
                raise CodeNotAssignedOrNotLocked()

            book = self._require_book(db, None, row.book_id, lock=RowLock.SHARE)
            if self._redeem_limit_reached(book, row):
                raise RedeemLimitReached()

            RedeemLogService(db).append(row, redeemed_on=now, redeemed_by=user_id)
            row.redeemed_count += 1
            row.last_redeemed_on = now
            row.locked_until = None
            redeemed_count = row.redeemed_count

        logger.info(f"Redeemed code {code} in book {row.book_id} ({redeemed_count} total)")
        return RedeemResponse(success=True)

    def _find_assigned(
        self,
        db: Session,
        owner_id: str,
        code: str,
        user_id: str,
        book_id: Optional[str],
    ) -> Optional[Code]:
        rows = CodeService(db).find_assigned(
            owner_id, code, user_id, book_id=book_id, lock=RowLock.UPDATE
        )
        if len(rows) > 1:
            raise AmbiguousCode(context={"books": [row.book_id for row in rows]})
        return rows[0] if rows else None

    @staticmethod
    def _is_locked(row: Code, now: datetime) -> bool:
        locked_until = as_utc(row.locked_until)
        return locked_until is not None and locked_until > now

    @staticmethod
    def _is_expired(row: Code, now: datetime) -> bool:
        expiration = as_utc(row.expiration)
        return expiration is not None and expiration <= now

    @staticmethod
    def _redeem_limit_reached(book: Book, row: Code) -> bool:
        return (
            book.max_redeem_count_per_user is not None
            and row.redeemed_count >= book.max_redeem_count_per_user
        )

    # Reads

    def list_user_codes(
        self,
        owner_id: str,
        book_id: str,
        user_id: str,
    ) -> List[UserCodeResponse]:
        with self._operation("list_user_codes", TransientError, book_id=book_id) as db:
            book = self._require_book(db, owner_id, book_id)
            codes = CodeService(db).list_codes_for_user(book.id, user_id)
            return [UserCodeResponse.model_validate(code) for code in codes]

    def list_redemptions(
        self,
        owner_id: str,
        book_id: str,
        code: str,
    ) -> List[RedemptionResponse]:
        with self._operation("list_redemptions", TransientError, book_id=book_id) as db:
            book = self._require_book(db, owner_id, book_id)
            if CodeService(db).get_code(book.id, code) is None:
                raise CodeNotFound(context={"code": code})
            logs = RedeemLogService(db).list_for_code(book.id, code)
            return [RedemptionResponse.model_validate(log) for log in logs]

    # Sweep

    def sweep_expired_locks(self) -> int:
        """
        Clear every lock whose time has passed. No row locks are taken: a
        redeem racing on the same row also sets `locked_until` to null.
        """
        with self._operation("sweep_expired_locks", SweepFailed) as db:
            code_service = CodeService(db, chunk_size=self.get_settings().lookup_chunk_size)
            now = self._now()
            expired = code_service.list_expired_locks(now)
            unlocked = code_service.unlock(expired, now) if expired else 0

        if unlocked:
            logger.info(f"Unlocked {unlocked} codes with expired locks")
        return unlocked

    @staticmethod
    def _require_book(
        db: Session,
        owner_id: Optional[str],
        book_id: str,
        lock: Optional[RowLock] = None,
    ) -> Book:
        book = BookService(db).get_book(book_id, owner_id=owner_id, lock=lock)
        if book is None:
            raise BookNotFound(context={"book_id": book_id})
        return book

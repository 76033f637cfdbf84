from datetime import (
    UTC,
    datetime,
)
from uuid import uuid4

from sqlalchemy import (
    Integer,
    String,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

from ..constants import MAX_CODE_TEXT_LENGTH


class Base(DeclarativeBase):
    pass


class Book(Base):
    __tablename__ = "books"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=lambda: uuid4().hex,
    )
    owner_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String,
        nullable=False,
    )
    max_codes_per_user: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    # None means unlimited
    max_redeem_count_per_user: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )

    codes: Mapped[list["Code"]] = relationship(
        "Code",
        back_populates="book",
    )


class Code(Base):
    __tablename__ = "codes"

    code: Mapped[str] = mapped_column(
        String(MAX_CODE_TEXT_LENGTH),
        primary_key=True,
        nullable=False,
    )
    book_id: Mapped[str] = mapped_column(
        ForeignKey("books.id"),
        primary_key=True,
        nullable=False,
    )
    expiration: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    assigned_to: Mapped[str | None] = mapped_column(
        String,
        nullable=True,
        index=True,
    )
    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    locked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    redeemed_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    last_redeemed_on: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
    )

    book: Mapped[Book] = relationship(
        "Book",
        back_populates="codes",
    )


class RedeemLog(Base):
    __tablename__ = "redeem_logs"

    id: Mapped[int] = mapped_column(
        primary_key=True,
        index=True,
    )

    # Composite foreign key to codes
    code: Mapped[str] = mapped_column(
        String(MAX_CODE_TEXT_LENGTH),
        nullable=False,
    )
    book_id: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )

    redeemed_on: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    redeemed_by: Mapped[str | None] = mapped_column(
        String,
        nullable=True,
    )

    __table_args__ = (
        ForeignKeyConstraint(
            ["code", "book_id"],
            ["codes.code", "codes.book_id"],
        ),
    )

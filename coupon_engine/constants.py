import enum
from datetime import (
    timedelta,
)


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXHAUSTED = "exhausted"
    TRANSIENT = "transient"


# Digits 2-9, uppercase without I/O, lowercase without the glyphs that read
# like a digit or like their own uppercase form (c i l o s u v w x).
CODE_ALPHABET = (
    "23456789"
    "ABCDEFGHJKLMNPQRSTUVWXYZ"
    "abdefghjkmnpqrtyz"
)

DEFAULT_LOCK_DURATION = timedelta(minutes=10)
DEFAULT_GENERATION_MAX_ROUNDS = 5
DEFAULT_ASSIGN_MAX_ATTEMPTS = 3
DEFAULT_CODE_LENGTH = 8
MAX_CODE_TEXT_LENGTH = 128


class RowLock(str, enum.Enum):
    SHARE = "share"
    UPDATE = "update"

import secrets
from datetime import datetime
from typing import (
    Callable,
    List,
    Optional,
    Sequence,
)

from coupon_engine.constants import (
    CODE_ALPHABET,
    DEFAULT_GENERATION_MAX_ROUNDS,
)
from coupon_engine.database.entities import Code
from coupon_engine.exceptions import GenerationExhausted
from coupon_engine.logging_utils import get_logger
from coupon_engine.services.code_service import CodeService


logger = get_logger(__name__)


class CodeGenerator:
    """
    Generates batches of codes that are unique within a book.

    Each round draws as many candidates as are still missing, drops the ones
    that already exist in the book (one lookup per round) and keeps the rest.
    After `max_rounds` rounds without reaching `amount` the batch is rejected
    and nothing is written.
    """

    def __init__(
        self,
        code_service: CodeService,
        max_rounds: int = DEFAULT_GENERATION_MAX_ROUNDS,
        warning_ratio: float = 0.1,
        alphabet: str = CODE_ALPHABET,
        choice: Callable[[Sequence[str]], str] = secrets.choice,
    ):
        self.code_service = code_service
        self.max_rounds = max_rounds
        self.warning_ratio = warning_ratio
        self.alphabet = alphabet
        self.choice = choice

    def keyspace(self, code_length: int) -> int:
        return len(self.alphabet) ** code_length

    def generate(
        self,
        book_id: str,
        amount: int,
        prefix: str = "",
        code_length: int = 8,
        expiration: Optional[datetime] = None,
    ) -> List[Code]:
        keyspace = self.keyspace(code_length)
        if amount > keyspace * self.warning_ratio:
            logger.warning(
                f"Requested {amount} codes of length {code_length} for book {book_id}, "
                f"keyspace is {keyspace}; expect collisions or exhaustion"
            )

        found = self._collect_unique(book_id, amount, prefix, code_length)
        if len(found) < amount:
            logger.warning(
                f"Generated only {len(found)}/{amount} unique codes for book {book_id} "
                f"after {self.max_rounds} rounds"
            )
            raise GenerationExhausted(
                context={
                    "book_id": book_id,
                    "amount": amount,
                    "generated": len(found),
                    "code_length": code_length,
                }
            )

        codes = [
            Code(
                code=text,
                book_id=book_id,
                expiration=expiration,
                redeemed_count=0,
            )
            for text in sorted(found)
        ]
        self.code_service.add_codes(codes)
        logger.info(f"Generated {len(codes)} codes for book {book_id}")
        return codes

    def _collect_unique(
        self,
        book_id: str,
        amount: int,
        prefix: str,
        code_length: int,
    ) -> set[str]:
        found: set[str] = set()
        needed = amount
        for round_number in range(1, self.max_rounds + 1):
            candidates = self._draw(needed, prefix, code_length) - found
            collisions = self.code_service.existing_codes(book_id, candidates)
            found |= candidates - collisions
            needed = amount - len(found)
            logger.debug(
                f"Generation round {round_number} for book {book_id}: "
                f"{len(collisions)} collisions, {needed} still needed"
            )
            if needed == 0:
                break
        return found

    def _draw(
        self,
        count: int,
        prefix: str,
        code_length: int,
    ) -> set[str]:
        return {
            prefix + "".join(self.choice(self.alphabet) for _ in range(code_length))
            for _ in range(count)
        }

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from coupon_engine.database.entities import Code, RedeemLog


class RedeemLogService:
    """
    Append-only audit trail of successful redemptions.
    """

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        code: Code,
        redeemed_on: datetime,
        redeemed_by: Optional[str] = None,
    ) -> RedeemLog:
        log = RedeemLog(
            code=code.code,
            book_id=code.book_id,
            redeemed_on=redeemed_on,
            redeemed_by=redeemed_by,
        )
        self.db.add(log)
        return log

    def list_for_code(self, book_id: str, code: str) -> List[RedeemLog]:
        return (
            self.db.query(RedeemLog)
            .filter(
                RedeemLog.book_id == book_id,
                RedeemLog.code == code,
            )
            .order_by(RedeemLog.redeemed_on.asc(), RedeemLog.id.asc())
            .all()
        )

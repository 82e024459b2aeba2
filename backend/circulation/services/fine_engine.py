"""Fine engine: overdue arithmetic and fine records."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from circulation.core.exceptions import (
    DocumentNotFoundError,
    FineError,
    FineErrorCode,
    StoreError,
    ValidationError,
    VersionConflictError,
)
from circulation.core.logging import get_logger
from circulation.schemas.common import ensure_utc, to_money, utcnow
from circulation.schemas.fine import FineReason, FineRecord, FineStatus
from circulation.schemas.loan import LoanRecord
from circulation.store.base import FINES, DocumentStore, new_id, with_timeout

logger = get_logger("fines")


def compute_overdue_days(due_date: datetime, reference_date: datetime) -> int:
    """Whole calendar days past the due date, never negative."""
    return max(0, (reference_date.date() - due_date.date()).days)


def compute_amount(overdue_days: int, rate_per_day: Decimal) -> Decimal:
    return to_money(Decimal(overdue_days) * rate_per_day)


class FineEngine:
    """Computes and records fines. Reads loans, never writes them."""

    def __init__(self, store: DocumentStore, timeout: Optional[float] = None):
        self._store = store
        self._timeout = timeout

    async def assess_fine(
        self,
        loan: LoanRecord,
        base_rate_per_day: Decimal,
        manual_amount: Optional[Decimal] = None,
        discount: Decimal = Decimal("0"),
        reason: FineReason = FineReason.LATE_RETURN,
        now: Optional[datetime] = None,
    ) -> FineRecord:
        """
        Record a fine for a loan.

        The overdue period runs from the due date to the return date, or to
        ``now`` for a loan that is still out. A staff-supplied
        ``manual_amount`` replaces the per-day computation. A record is
        written even when the total comes to zero.
        """
        now = ensure_utc(now) or utcnow()
        if base_rate_per_day < 0:
            raise ValidationError("Fine rate cannot be negative", field="base_rate_per_day")
        if manual_amount is not None and manual_amount < 0:
            raise ValidationError("Fine amount cannot be negative", field="manual_amount")
        if discount < 0:
            raise ValidationError("Discount cannot be negative", field="discount")

        overdue_days = compute_overdue_days(loan.due_date, loan.return_date or now)
        if manual_amount is not None:
            amount = to_money(manual_amount)
            rate = None
        else:
            amount = compute_amount(overdue_days, base_rate_per_day)
            rate = to_money(base_rate_per_day)
        discount = to_money(discount)

        fine = FineRecord(
            id=new_id("fine"),
            loan_id=loan.id,
            borrower_id=loan.borrower_id,
            book_id=loan.book_id,
            amount=amount,
            discount=discount,
            total_amount=max(Decimal("0.00"), amount - discount),
            reason=reason,
            overdue_days=overdue_days,
            rate_per_day=rate,
            status=FineStatus.UNPAID,
            created_at=now,
        )
        await with_timeout(self._store.create(FINES, fine.to_data(), id=fine.id), self._timeout)
        logger.info(
            f"Assessed fine {fine.id} on loan {loan.id}: {fine.reason.value} "
            f"{overdue_days}d amount={amount} discount={discount} total={fine.total_amount}"
        )
        return fine

    async def mark_paid(self, fine_id: str, now: Optional[datetime] = None) -> FineRecord:
        """Move a fine from Unpaid to Paid."""
        try:
            doc = await with_timeout(self._store.get(FINES, fine_id), self._timeout)
        except DocumentNotFoundError:
            raise FineError(FineErrorCode.NOT_FOUND, details={"fine_id": fine_id})
        except StoreError:
            raise FineError(FineErrorCode.PERSISTENCE_FAILURE, details={"fine_id": fine_id})

        fine = FineRecord.from_document(doc)
        if fine.is_paid:
            raise FineError(FineErrorCode.ALREADY_PAID, details={"fine_id": fine_id})

        paid = fine.evolve(status=FineStatus.PAID, paid_at=ensure_utc(now) or utcnow())
        try:
            await with_timeout(
                self._store.update(FINES, fine_id, paid.to_data(), expected_version=doc.version),
                self._timeout,
            )
        except VersionConflictError:
            # Fines only ever change by being paid
            raise FineError(FineErrorCode.ALREADY_PAID, details={"fine_id": fine_id})
        except StoreError:
            raise FineError(FineErrorCode.PERSISTENCE_FAILURE, details={"fine_id": fine_id})
        logger.info(f"Fine {fine_id} paid ({paid.total_amount})")
        return paid

    async def get_fine(self, fine_id: str) -> FineRecord:
        try:
            doc = await with_timeout(self._store.get(FINES, fine_id), self._timeout)
        except DocumentNotFoundError:
            raise FineError(FineErrorCode.NOT_FOUND, details={"fine_id": fine_id})
        except StoreError:
            raise FineError(FineErrorCode.PERSISTENCE_FAILURE, details={"fine_id": fine_id})
        return FineRecord.from_document(doc)

    async def discard_fine(self, fine_id: str) -> None:
        """Delete a fine that was just assessed and never changed since."""
        try:
            await with_timeout(self._store.delete(FINES, fine_id, expected_version=1), self._timeout)
        except DocumentNotFoundError:
            raise FineError(FineErrorCode.NOT_FOUND, details={"fine_id": fine_id})
        except StoreError:
            raise FineError(FineErrorCode.PERSISTENCE_FAILURE, details={"fine_id": fine_id})
        logger.info(f"Discarded fine {fine_id}")

    async def list_fines(
        self,
        borrower_id: Optional[str] = None,
        loan_id: Optional[str] = None,
        status: Optional[FineStatus] = None,
    ) -> List[FineRecord]:
        filters = {}
        if borrower_id:
            filters["borrower_id"] = borrower_id
        if loan_id:
            filters["loan_id"] = loan_id
        if status:
            filters["status"] = status
        docs = await with_timeout(self._store.query(FINES, **filters), self._timeout)
        fines = [FineRecord.from_document(doc) for doc in docs]
        return sorted(fines, key=lambda f: f.created_at)

    async def outstanding_total(self, borrower_id: str) -> tuple[int, Decimal]:
        """Count and sum of a borrower's unpaid fines."""
        unpaid = await self.list_fines(borrower_id=borrower_id, status=FineStatus.UNPAID)
        total = sum((f.total_amount for f in unpaid), Decimal("0.00"))
        return len(unpaid), to_money(total)

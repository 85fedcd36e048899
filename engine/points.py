"""Points ledger: append-only transactions plus a per-user balance cache.

balance   = sum(confirmed amounts)
debt      = sum(|held amounts|) of holds not yet released or captured
available = max(0, balance - debt)

Each ledger row and its effect on ``points_accounts`` share one commit; the
account update is conditional wherever it could overdraw.
"""
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError

from models import db
from models.points import (
    PointsAccount,
    PointsTransaction,
    PointsTransactionStatus as TxStatus,
    PointsTransactionType as TxType,
)
from engine.errors import InsufficientPoints, InvalidInput, InvalidState, NotFound
from engine.idempotency import insert_once


@dataclass
class PointsBalance:
    user_id: int
    balance: int
    debt: int

    @property
    def available(self) -> int:
        return max(0, self.balance - self.debt)

    def to_dict(self):
        return {"balance": self.balance, "debt": self.debt, "available": self.available}


@dataclass
class PostResult:
    transaction_id: int
    amount: int
    status: str
    duplicate: bool = False


def _positive(amount) -> int:
    try:
        value = int(amount)
    except (TypeError, ValueError):
        raise InvalidInput("amount must be an integer")
    if value <= 0:
        raise InvalidInput("amount must be positive")
    return value


class PointsLedger:
    def _ensure_account(self, user_id):
        if db.session.get(PointsAccount, user_id) is not None:
            return
        db.session.add(PointsAccount(user_id=user_id, balance=0, debt=0))
        try:
            db.session.commit()
        except IntegrityError:
            # another request opened the account first
            db.session.rollback()

    def find(self, user_id, tx_type, ref_key):
        return PointsTransaction.query.filter_by(user_id=user_id, type=tx_type, ref_key=ref_key).first()

    def _insert(self, tx):
        """Insert a ledger row; a refKey clash returns the earlier row instead."""
        if tx.ref_key is None:
            db.session.add(tx)
            db.session.flush()
            return tx, True
        return insert_once(tx, lambda: self.find(tx.user_id, tx.type, tx.ref_key))

    def _move(self, user_id, balance=0, debt=0, require_available=None):
        stmt = update(PointsAccount).where(PointsAccount.user_id == user_id)
        if require_available is not None:
            stmt = stmt.where(PointsAccount.balance - PointsAccount.debt >= require_available)
        res = db.session.execute(
            stmt.values(
                balance=PointsAccount.balance + balance,
                debt=PointsAccount.debt + debt,
                updated_at=datetime.utcnow(),
            ).execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    @staticmethod
    def _result(tx, duplicate=False):
        return PostResult(tx.id, tx.amount, tx.status.value, duplicate=duplicate)

    def post(self, user_id, amount, tx_type=TxType.ACCRUAL, ref_key=None, reason=None) -> PostResult:
        """Confirmed credit. With a refKey, a replay returns the first posting."""
        amount = _positive(amount)
        self._ensure_account(user_id)
        tx, created = self._insert(PointsTransaction(
            user_id=user_id, amount=amount, type=TxType(tx_type),
            status=TxStatus.CONFIRMED, ref_key=ref_key, reason=reason,
        ))
        if not created:
            return self._result(tx, duplicate=True)
        self._move(user_id, balance=amount)
        db.session.commit()
        return self._result(tx)

    def spend(self, user_id, amount, ref_key=None, reason=None) -> PostResult:
        amount = _positive(amount)
        self._ensure_account(user_id)
        tx, created = self._insert(PointsTransaction(
            user_id=user_id, amount=-amount, type=TxType.SPEND,
            status=TxStatus.CONFIRMED, ref_key=ref_key, reason=reason,
        ))
        if not created:
            return self._result(tx, duplicate=True)
        if not self._move(user_id, balance=-amount, require_available=amount):
            db.session.rollback()
            raise InsufficientPoints("Not enough points", available=self.balance_of(user_id).available)
        db.session.commit()
        return self._result(tx)

    def hold(self, user_id, amount, hold_ref, reason=None) -> PostResult:
        """Reserve points for an in-flight spend; counted as debt until released or captured."""
        amount = _positive(amount)
        if not hold_ref:
            raise InvalidInput("hold_ref is required")
        self._ensure_account(user_id)
        tx, created = self._insert(PointsTransaction(
            user_id=user_id, amount=-amount, type=TxType.HOLD,
            status=TxStatus.HELD, ref_key=hold_ref, reason=reason,
        ))
        if not created:
            return self._result(tx, duplicate=True)
        if not self._move(user_id, debt=amount, require_available=amount):
            db.session.rollback()
            raise InsufficientPoints("Not enough points", available=self.balance_of(user_id).available)
        db.session.commit()
        return self._result(tx)

    def _settle_hold(self, user_id, hold_ref, to_status):
        hold = self.find(user_id, TxType.HOLD, hold_ref)
        if hold is None:
            raise NotFound("Hold not found")
        amount = -hold.amount
        res = db.session.execute(
            update(PointsTransaction)
            .where(PointsTransaction.id == hold.id, PointsTransaction.status == TxStatus.HELD)
            .values(status=to_status, processed_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.session.rollback()
            hold = self.find(user_id, TxType.HOLD, hold_ref)
            if hold.status == to_status:
                return self._result(hold, duplicate=True)
            raise InvalidState(f"Hold is already {hold.status.value}")

        balance = -amount if to_status == TxStatus.CONFIRMED else 0
        self._move(user_id, balance=balance, debt=-amount)
        db.session.commit()
        return self._result(self.find(user_id, TxType.HOLD, hold_ref))

    def release(self, user_id, hold_ref) -> PostResult:
        return self._settle_hold(user_id, hold_ref, TxStatus.CANCELED)

    def capture(self, user_id, hold_ref) -> PostResult:
        """Turn a hold into a confirmed spend."""
        return self._settle_hold(user_id, hold_ref, TxStatus.CONFIRMED)

    def adjust(self, user_id, amount, admin_id, reason, ref_key=None) -> PostResult:
        """Admin correction in either direction; not limited by the current balance."""
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            raise InvalidInput("amount must be a non-zero integer")
        if amount == 0:
            raise InvalidInput("amount must be a non-zero integer")
        if not admin_id:
            raise InvalidInput("admin_id is required")
        if not (reason or "").strip():
            raise InvalidInput("reason is required")

        self._ensure_account(user_id)
        tx, created = self._insert(PointsTransaction(
            user_id=user_id, amount=amount, type=TxType.ADMIN_ADJUST,
            status=TxStatus.CONFIRMED, ref_key=ref_key, reason=reason.strip(), admin_id=admin_id,
        ))
        if not created:
            return self._result(tx, duplicate=True)
        self._move(user_id, balance=amount)
        db.session.commit()
        return self._result(tx)

    def reverse(self, user_id, ref_key, tx_type=TxType.ACCRUAL, reason=None) -> PostResult:
        """Take back the confirmed credit posted under ``ref_key``.

        The reversal is a signed row of its own, keyed by the same refKey, so
        a replay returns the first reversal. Points already spent cannot be
        taken back.
        """
        if not ref_key:
            raise InvalidInput("ref_key is required")
        try:
            tx_type = TxType(tx_type)
        except ValueError:
            raise InvalidInput(f"Unknown transaction type: {tx_type!r}")
        original = self.find(user_id, tx_type, ref_key)
        if original is None or original.status != TxStatus.CONFIRMED or original.amount <= 0:
            raise NotFound("No confirmed credit under that ref_key")

        amount = original.amount
        self._ensure_account(user_id)
        tx, created = self._insert(PointsTransaction(
            user_id=user_id, amount=-amount, type=TxType.REVERSAL,
            status=TxStatus.CONFIRMED, ref_key=ref_key, reason=reason,
        ))
        if not created:
            return self._result(tx, duplicate=True)
        if not self._move(user_id, balance=-amount, require_available=amount):
            db.session.rollback()
            raise InsufficientPoints("Credit already spent", available=self.balance_of(user_id).available)
        db.session.commit()
        return self._result(tx)

    # ---------- read side ----------
    def balance_of(self, user_id) -> PointsBalance:
        account = db.session.get(PointsAccount, user_id)
        if account is None:
            return PointsBalance(user_id, 0, 0)
        return PointsBalance(user_id, account.balance, account.debt)

    def balance_from_log(self, user_id) -> PointsBalance:
        """Recompute the balance from the ledger rows alone."""
        balance, held = db.session.query(
            func.coalesce(func.sum(case((PointsTransaction.status == TxStatus.CONFIRMED, PointsTransaction.amount), else_=0)), 0),
            func.coalesce(func.sum(case((PointsTransaction.status == TxStatus.HELD, -PointsTransaction.amount), else_=0)), 0),
        ).filter(PointsTransaction.user_id == user_id).one()
        return PointsBalance(user_id, int(balance), int(held))

    def history(self, user_id, page=1, limit=20):
        page = page if page and page > 0 else 1
        limit = max(1, min(int(limit or 20), 50))
        q = PointsTransaction.query.filter_by(user_id=user_id)
        total = q.count()
        rows = (
            q.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return total, rows

# wallet.py - shared wallet/ledger helpers used by every money-moving operation
from decimal import Decimal
from typing import Optional, Dict, Any
import logging

from errors import InsufficientBalanceError, NotFoundError
from models import User, Transaction, TransactionStatus
from utils import to_money

logger = logging.getLogger(__name__)


class WalletManager:
    """
    All wallet mutations go through single UPDATE statements so concurrent
    requests never read-modify-write a stale balance.
    """

    @staticmethod
    def lock_user(session, user_id: int) -> User:
        """Load the account row with a row-level lock for the rest of the transaction"""
        user = session.query(User).filter(User.id == user_id).with_for_update().populate_existing().first()
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def credit(session, user_id: int, amount: Decimal, count_as_earnings: bool = False) -> None:
        amount = to_money(amount)
        if amount < 0:
            raise ValueError(f"Cannot credit a negative amount: {amount}")

        values = {User.wallet_balance: User.wallet_balance + amount}
        if count_as_earnings:
            values[User.total_earnings] = User.total_earnings + amount

        updated = session.query(User).filter(User.id == user_id).update(
            values, synchronize_session="fetch"
        )
        if not updated:
            raise NotFoundError("User not found")
        logger.info(f"Wallet credit: user {user_id}, amount {amount}, earnings={count_as_earnings}")

    @staticmethod
    def debit(session, user_id: int, amount: Decimal) -> None:
        """Decrement the balance only if it stays non-negative"""
        amount = to_money(amount)
        if amount <= 0:
            raise ValueError(f"Debit amount must be positive: {amount}")

        updated = session.query(User).filter(
            User.id == user_id,
            User.wallet_balance >= amount
        ).update(
            {User.wallet_balance: User.wallet_balance - amount},
            synchronize_session="fetch"
        )
        if not updated:
            if not session.get(User, user_id):
                raise NotFoundError("User not found")
            raise InsufficientBalanceError("Insufficient balance", {"required": float(amount)})
        logger.info(f"Wallet debit: user {user_id}, amount {amount}")

    @staticmethod
    def record_transaction(session, user_id: int, type_: str, amount: Decimal, status: str,
                           description: str = None, reference_id=None,
                           meta: Optional[Dict[str, Any]] = None) -> Transaction:
        transaction = Transaction(
            user_id=user_id,
            type=type_,
            amount=to_money(amount),
            status=status,
            description=description,
            reference_id=str(reference_id) if reference_id is not None else None,
            meta=meta or {},
        )
        session.add(transaction)
        session.flush()
        return transaction

    @staticmethod
    def finalize_transactions(session, user_id: int, type_: str, reference_id, status: str) -> int:
        """Move the PENDING transactions for a request to their final status"""
        return session.query(Transaction).filter(
            Transaction.user_id == user_id,
            Transaction.type == type_,
            Transaction.reference_id == str(reference_id),
            Transaction.status == TransactionStatus.PENDING.value,
        ).update({Transaction.status: status}, synchronize_session="fetch")

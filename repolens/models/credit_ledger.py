from sqlalchemy.orm import sessionmaker

from repolens.db.models import UserCredit
from repolens.exceptions import InsufficientCreditsError, ValidationError


class CreditLedger:
    """SQL-backed credit balances. One credit pays for one ingested file."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_remaining_credits(self, user_id: str) -> int:
        with self._session_factory() as session:
            row = session.get(UserCredit, user_id)
            return row.credits if row else 0

    def grant(self, user_id: str, amount: int) -> int:
        if amount < 0:
            raise ValidationError("Credit grant must not be negative")
        with self._session_factory() as session:
            row = session.get(UserCredit, user_id)
            if row is None:
                row = UserCredit(user_id=user_id, credits=0)
                session.add(row)
            row.credits += amount
            session.commit()
            return row.credits

    def debit(self, user_id: str, amount: int) -> int:
        if amount < 0:
            raise ValidationError("Credit debit must not be negative")
        with self._session_factory() as session:
            row = session.get(UserCredit, user_id)
            available = row.credits if row else 0
            if available < amount:
                raise InsufficientCreditsError(required=amount, available=available)
            if row is not None:
                row.credits -= amount
                session.commit()
            return available - amount

"""Vector index and billing collaborator protocol interfaces."""

from typing import List, Protocol, Tuple, runtime_checkable


@runtime_checkable
class VectorIndexProtocol(Protocol):
    """Stores one vector per embedding record id, scoped by project."""

    def upsert(self, record_id: str, project_id: str, vector: List[float]) -> None:
        ...

    def query(
        self, project_id: str, vector: List[float], k: int
    ) -> List[Tuple[str, float]]:
        """Return up to k (record_id, cosine_distance) pairs, nearest first."""
        ...

    def delete(self, record_ids: List[str]) -> None:
        ...


@runtime_checkable
class BillingProtocol(Protocol):
    """Credit balance collaborator charged one unit per ingested file."""

    def get_remaining_credits(self, user_id: str) -> int:
        ...

    def debit(self, user_id: str, amount: int) -> int:
        """Subtract amount and return the new balance."""
        ...

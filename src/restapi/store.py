"""
=============================================================================
USER STORE
=============================================================================

In-memory mapping of user id (decimal string) → user object (dict).

    ┌─────────────────────────────────────────────────────────────────────┐
    │   "1" → {"id": 1, "name": "Alice"}                                   │
    │   "2" → {"id": 2, "name": "Bob"}                                     │
    │   "3" → {"name": "Carol", "id": 3}      ← insert() assigned id 3     │
    └─────────────────────────────────────────────────────────────────────┘

Rules:
- Seeded at construction, grows only through insert(), never shrinks.
- insert() allocates id = len(store) + 1 at the moment of insertion.
- Lookups return copies; callers cannot mutate stored users.

=============================================================================
THREAD SAFETY
=============================================================================

Sessions run on pool worker threads, so two POSTs can race:

    Thread A: n = len(store)  → 2
    Thread B: n = len(store)  → 2
    Thread A: store["3"] = a
    Thread B: store["3"] = b     ← lost update!

Allocation and insertion therefore happen together under one lock.
Reads take the same lock so they never see a half-inserted user.

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Why not a global counter like next_id?"
A: "The size+1 rule is the observable contract: with S seed entries and
   N successful creates, the next id is S + N + 1. A separate counter
   would drift from that if seeds are ever out of sequence."

Q: "What happens if the seed is out of sequence, e.g. keys {"1", "3"}?"
A: "Then size+1 == 3 collides and the existing entry is overwritten.
   The new user wins and a warning is logged."

=============================================================================
"""

from typing import Dict, List, Mapping, Optional
import copy
import logging
import threading


logger = logging.getLogger(__name__)


PLAINTEXT_SEED: Dict[str, dict] = {
    "1": {"echo": "HelloWorld"},
}

TLS_SEED: Dict[str, dict] = {
    "1": {"id": 1, "name": "Alice"},
    "2": {"id": 2, "name": "Bob"},
}


class UserStore:
    """
    Thread-safe in-memory user store.

    Example:
        store = UserStore.tls_seed()
        store.insert({"name": "Carol"})   # → {"name": "Carol", "id": 3}
        store.get("3")                    # → {"name": "Carol", "id": 3}
        store.get("99")                   # → None
    """

    def __init__(self, seed: Optional[Mapping[str, dict]] = None):
        self._users: Dict[str, dict] = copy.deepcopy(dict(seed or {}))
        self._lock = threading.Lock()

    @classmethod
    def plaintext_seed(cls) -> "UserStore":
        """Store seeded like the HTTP variant: {"1": {"echo": "HelloWorld"}}."""
        return cls(PLAINTEXT_SEED)

    @classmethod
    def tls_seed(cls) -> "UserStore":
        """Store seeded like the HTTPS variant: Alice and Bob."""
        return cls(TLS_SEED)

    def values(self) -> List[dict]:
        """All users in insertion order (copies)."""
        with self._lock:
            return copy.deepcopy(list(self._users.values()))

    def get(self, user_id: str) -> Optional[dict]:
        """User stored under exactly this key, or None."""
        with self._lock:
            user = self._users.get(user_id)
            return copy.deepcopy(user) if user is not None else None

    def insert(self, user: dict) -> dict:
        """
        Assign the next id and store the user.

        Sets user["id"] to the new integer id (overwriting any client-sent
        "id") and stores it under str(id).

        Returns:
            A copy of the stored user.
        """
        with self._lock:
            new_id = str(len(self._users) + 1)
            if new_id in self._users:
                logger.warning(f"User id {new_id} already taken, overwriting existing user")

            user["id"] = int(new_id)
            self._users[new_id] = copy.deepcopy(user)

            logger.debug(f"Stored user {new_id}")
            return copy.deepcopy(user)

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._users

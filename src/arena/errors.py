from __future__ import annotations

from collections.abc import Iterable


class PairingError(Exception):
    """Base class for pairing engine failures."""


class TransientStoreError(PairingError):
    """A queue or store operation failed because the backend was unreachable."""

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        super().__init__(message or f"Store operation '{operation}' failed.")


class DuplicateEntry(PairingError):
    def __init__(self, tournament_id: str, player_id: str) -> None:
        self.tournament_id = tournament_id
        self.player_id = player_id
        super().__init__(
            f"Player {player_id} is already claimed by a pairing batch in tournament {tournament_id}."
        )


class DuplicateClaim(PairingError):
    """A player turned out to be held by another batch at ack time.

    The atomic claim makes this impossible for a correct store, so it is
    never corrected silently.
    """

    def __init__(self, tournament_id: str, player_ids: Iterable[str], batch_id: str) -> None:
        self.tournament_id = tournament_id
        self.player_ids = sorted(player_ids)
        self.batch_id = batch_id
        super().__init__(
            f"Players {', '.join(self.player_ids)} in tournament {tournament_id} "
            f"are pending under a batch other than {batch_id}."
        )


class ConstraintExhausted(PairingError):
    def __init__(self, player_id: str) -> None:
        self.player_id = player_id
        super().__init__(f"No legal opponent left for player {player_id}.")


class CommitFailure(PairingError):
    """Downstream game creation rejected a pair."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class PlayerIneligible(CommitFailure):
    def __init__(self, player_ids: Iterable[str], reason: str) -> None:
        self.player_ids = sorted(player_ids)
        super().__init__(reason)

from __future__ import annotations

from enum import Enum


class QueueState(str, Enum):
    WAITING = "waiting"
    PENDING = "pending"


class PieceColor(str, Enum):
    WHITE = "white"
    BLACK = "black"


class GameStatus(str, Enum):
    ONGOING = "ongoing"
    FINISHED = "finished"
    ABORTED = "aborted"


class GameResult(str, Enum):
    WHITE = "white"
    BLACK = "black"
    DRAW = "draw"


class SchedulerState(str, Enum):
    IDLE = "idle"
    CLAIMING = "claiming"
    PAIRING = "pairing"
    COMMITTING = "committing"
    STOPPED = "stopped"

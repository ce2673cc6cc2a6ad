from .pairing_control import PairingControl
from .pairing_game import PairingGame
from .player_profile import PlayerProfile
from .queue_entry import QueueEntry

__all__ = [
    "PairingControl",
    "PairingGame",
    "PlayerProfile",
    "QueueEntry",
]

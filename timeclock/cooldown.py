# timeclock/cooldown.py
import time
from typing import Callable, Dict


class Cooldown:
    """Rejects a second button press from the same user within `seconds`."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self._last: Dict[int, float] = {}

    def hit(self, user_id: int) -> bool:
        now = self.clock()
        last = self._last.get(user_id)
        if last is not None and now - last < self.seconds:
            return True
        self._last[user_id] = now
        return False

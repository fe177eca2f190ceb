# MIT License
# Copyright (c) 2025 Hashborn

"""
Vault event feed.

Every state-changing controller operation publishes exactly one VaultEvent
once it has finished: committed operations carry their outcome (token ids,
amount paid or frozen, new rate), rejected ones carry the error code. The
bus keeps a bounded history that the RPC exposes at /events.
"""
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple
from pydantic import BaseModel, Field
import logging

from ...protocol.types.common import ActionType

logger = logging.getLogger(__name__)

HISTORY_SIZE = 1000


class VaultEvent(BaseModel):
    action: ActionType
    caller: str
    timestamp: Optional[int] = None
    token_ids: List[int] = Field(default_factory=list)
    amount: Optional[int] = None     # Paid (claim/withdraw) or frozen (unstake)
    rate: Optional[int] = None       # update_rate only
    error: Optional[str] = None      # Error code when rejected

    @property
    def committed(self) -> bool:
        return self.error is None


Listener = Callable[[VaultEvent], None]


class EventBus:
    """
    Synchronous dispatch of VaultEvents.

    Listeners filter by action (None = every action) and choose whether they
    also want rejected operations. A failing listener is logged and skipped.
    """

    def __init__(self, history_size: int = HISTORY_SIZE):
        self._subscriptions: List[Tuple[Optional[ActionType], bool, Listener]] = []
        self._history: Deque[VaultEvent] = deque(maxlen=history_size)

    def subscribe(self, listener: Listener, action: Optional[ActionType] = None,
                  include_rejected: bool = False) -> None:
        self._subscriptions.append((action, include_rejected, listener))
        logger.debug(f"Subscribed to {action.value if action else 'all actions'}")

    def unsubscribe(self, listener: Listener) -> None:
        before = len(self._subscriptions)
        self._subscriptions = [s for s in self._subscriptions if s[2] != listener]
        if len(self._subscriptions) == before:
            logger.warning("Unsubscribe of a listener that was never subscribed")

    def publish(self, event: VaultEvent) -> None:
        self._history.append(event)

        for action, include_rejected, listener in list(self._subscriptions):
            if action is not None and action != event.action:
                continue
            if not event.committed and not include_rejected:
                continue
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in listener for {event.action.value}: {e}", exc_info=True)

    def recent(self, limit: int = 50, caller: Optional[str] = None) -> List[VaultEvent]:
        """Newest first, optionally restricted to one caller."""
        events = [e for e in reversed(self._history) if caller is None or e.caller == caller]
        return events[:limit]

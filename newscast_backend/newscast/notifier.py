import logging
from collections import OrderedDict, deque
from typing import Deque, List, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, owner_id: str, text: str) -> None:
        ...


class LogNotifier:
    async def send(self, owner_id: str, text: str) -> None:
        logger.info(f"[to {owner_id}] {text}")


class InboxNotifier:
    """Keeps the latest messages per owner in memory so callers can poll them.

    Both the messages per owner and the number of owners are bounded. When a new
    owner arrives at the cap, the owner who was written to least recently is dropped.
    """

    def __init__(self, max_messages: int = 50, max_owners: int = 1000):
        self.max_messages = max_messages
        self.max_owners = max_owners
        self._inbox: "OrderedDict[str, Deque[str]]" = OrderedDict()

    async def send(self, owner_id: str, text: str) -> None:
        logger.info(f"[to {owner_id}] {text.splitlines()[0] if text else ''}")
        box = self._inbox.get(owner_id)
        if box is None:
            while len(self._inbox) >= self.max_owners:
                dropped, _ = self._inbox.popitem(last=False)
                logger.debug(f"Inbox for {dropped} evicted")
            box = self._inbox[owner_id] = deque(maxlen=self.max_messages)
        else:
            self._inbox.move_to_end(owner_id)
        box.append(text)

    def messages(self, owner_id: str) -> List[str]:
        return list(self._inbox.get(owner_id, ()))

    def last(self, owner_id: str) -> str:
        box = self._inbox.get(owner_id)
        return box[-1] if box else ""

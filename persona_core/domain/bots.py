from typing import Optional, List, Protocol
from .models import Bot


class KeyValueStore(Protocol):
    """以固定 key 存取字符串值的本地持久化介质。"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class BotStore(Protocol):
    def save(self, bot: Bot) -> None:
        ...

    def list(self) -> List[Bot]:
        ...

    def delete(self, bot_id: str) -> None:
        ...

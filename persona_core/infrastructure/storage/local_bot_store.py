import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from persona_core.domain.bots import BotStore, KeyValueStore
from persona_core.domain.exceptions import StoreReadFailure
from persona_core.domain.models import Bot
from persona_core.infrastructure.logging.logger import logger


STORAGE_KEY = "my_created_bots"


class LocalBotStore(BotStore):
    """“我的 Bot” 列表，整体序列化为 JSON 数组存放在一个固定 key 下。

    单线程、同步介质，不做并发控制。
    """

    def __init__(self, kv: KeyValueStore, key: str = STORAGE_KEY):
        self._kv = kv
        self._key = key

    def save(self, bot: Bot) -> None:
        bots = self._read_or_empty()
        bots.append(bot)
        self._write(bots)
        logger.log(logging.INFO, "Saved bot", extra={"extra": {"bot_id": bot.id, "count": len(bots)}})

    def list(self) -> List[Bot]:
        return self._read_or_empty()

    def delete(self, bot_id: str) -> None:
        bots = self._read_or_empty()
        kept = [b for b in bots if b.id != bot_id]
        if len(kept) == len(bots):
            return
        self._write(kept)
        logger.log(logging.INFO, "Deleted bot", extra={"extra": {"bot_id": bot_id, "removed": len(bots) - len(kept)}})

    def _read_or_empty(self) -> List[Bot]:
        # 存储被外部破坏时调用方没有恢复手段，按空列表处理
        try:
            return self._read()
        except StoreReadFailure as e:
            logger.warning(
                "Stored bots unreadable, treating as empty",
                extra={"extra": {"key": self._key, "error": e.message}},
            )
            return []

    def _read(self) -> List[Bot]:
        raw = self._kv.get(self._key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, RecursionError) as e:
            raise StoreReadFailure(str(e), key=self._key)
        if not isinstance(data, list):
            raise StoreReadFailure("Stored bots is not a list", key=self._key)
        items: List[Bot] = []
        for entry in data:
            try:
                items.append(self._to_bot(entry))
            except (KeyError, TypeError, ValueError):
                continue
        return items

    def _write(self, bots: List[Bot]) -> None:
        self._kv.set(self._key, json.dumps([self._to_payload(b) for b in bots], ensure_ascii=False))

    @staticmethod
    def _to_payload(bot: Bot) -> Dict[str, Any]:
        return {
            "id": bot.id,
            "name": bot.name,
            "persona": bot.persona,
            "avatar_url": bot.avatar_url,
            "created_at": bot.created_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
        }

    @staticmethod
    def _to_bot(data: Dict[str, Any]) -> Bot:
        for name in ("id", "name", "persona"):
            if not isinstance(data[name], str):
                raise TypeError(f"{name} must be a string")
        return Bot(
            id=data["id"],
            name=data["name"],
            persona=data["persona"],
            avatar_url=data.get("avatar_url") or "",
            created_at=datetime.fromisoformat(str(data["created_at"]).replace("Z", "+00:00")),
        )

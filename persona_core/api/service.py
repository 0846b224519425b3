"""对外 API 服务模块。

PersonaChatApp 把各组件串成完整流程，供上层界面调用：

- 创建 Bot：保存到本地列表，生成分享 token 并返回聊天页路径。
- 首页：列出 / 删除 “我的 Bot”，生成可复制的分享链接。
- 聊天页：从分享链接还原 Bot；失败时给出跳转目标与提示，而不是抛错。

所有依赖（存储、模型服务、配置）都由构造函数显式传入，不使用全局单例。
"""

from dataclasses import dataclass
from typing import Optional, Tuple
from uuid import uuid4

from persona_core.chat.session import StreamingChatSession
from persona_core.config.settings import settings
from persona_core.domain.bots import BotStore
from persona_core.domain.exceptions import DecodeFailure, ValidationError
from persona_core.domain.models import Bot, utcnow
from persona_core.infrastructure.logging.logger import logger
from persona_core.infrastructure.storage.kv_store import JsonFileKeyValueStore
from persona_core.infrastructure.storage.local_bot_store import LocalBotStore
from persona_core.providers import create_provider
from persona_core.providers.base import ModelService
from persona_core.sharing.codec import decode_bot, encode_bot
from persona_core.sharing.links import build_share_path, build_share_url, extract_share_token


INVALID_LINK_ALERT = "Invalid Bot Link"


@dataclass
class ShareLinkResolution:
    """解析分享链接的结果。

    bot 为 None 时，调用方应跳转到 redirect_to；alert 不为空时需要提示用户。
    """

    bot: Optional[Bot]
    redirect_to: Optional[str] = None
    alert: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.bot is not None


class PersonaChatApp:
    def __init__(self, store: BotStore, model_service: ModelService, cfg=settings):
        self._store = store
        self._model_service = model_service
        self._settings = cfg

    # ---- 创建 ----

    def create_bot(self, name: str, persona: str, avatar_url: str = "") -> Tuple[Bot, str]:
        """创建并保存一个 Bot。

        Returns:
            (bot, 聊天页相对路径)，路径中已携带分享 token。

        Raises:
            ValidationError: 名称或人设为空。
        """
        name = (name or "").strip()
        persona = (persona or "").strip()
        if not name:
            raise ValidationError(code="MISSING_NAME", message="Bot name is required")
        if not persona:
            raise ValidationError(code="MISSING_PERSONA", message="Bot persona is required")

        bot = Bot(
            id=f"b-{uuid4().hex}",
            name=name,
            persona=persona,
            avatar_url=(avatar_url or "").strip() or self._settings.default_avatar_url.format(name=name),
            created_at=utcnow(),
        )
        self._store.save(bot)
        logger.info("Created bot", extra={"extra": {"bot_id": bot.id}})
        return bot, build_share_path(encode_bot(bot), cfg=self._settings)

    # ---- 首页 ----

    def list_bots(self) -> list[Bot]:
        return self._store.list()

    def delete_bot(self, bot_id: str) -> None:
        self._store.delete(bot_id)

    def share_url(self, bot: Bot, origin: Optional[str] = None) -> str:
        """供复制到剪贴板的完整分享链接。"""
        return build_share_url(encode_bot(bot), origin=origin, cfg=self._settings)

    def chat_path(self, bot: Bot) -> str:
        """点击卡片时跳转的站内路径。"""
        return build_share_path(encode_bot(bot), cfg=self._settings)

    # ---- 聊天页 ----

    def resolve_share_link(self, url: str) -> ShareLinkResolution:
        token = extract_share_token(url, cfg=self._settings)
        if not token:
            return ShareLinkResolution(bot=None, redirect_to=self._settings.home_path)
        try:
            bot = decode_bot(token)
        except DecodeFailure as e:
            logger.warning(
                "Failed to decode bot",
                extra={"extra": {"error": e.message, **e.extra}},
            )
            return ShareLinkResolution(
                bot=None,
                redirect_to=self._settings.home_path,
                alert=INVALID_LINK_ALERT,
            )
        return ShareLinkResolution(bot=bot)

    def open_chat(self, url: str) -> Tuple[Optional[StreamingChatSession], ShareLinkResolution]:
        """从分享链接打开一个新的会话；链接无效时会话为 None。"""
        resolution = self.resolve_share_link(url)
        if not resolution.ok:
            return None, resolution
        session = StreamingChatSession(
            resolution.bot,
            self._model_service,
            error_marker=self._settings.error_marker,
        )
        return session, resolution


def create_default_app(cfg=None) -> PersonaChatApp:
    """按配置组装默认应用：本地 JSON 存储 + 默认 Provider。"""
    cfg = cfg or settings
    store = LocalBotStore(JsonFileKeyValueStore(root=cfg.storage_root))
    return PersonaChatApp(store=store, model_service=create_provider(cfg=cfg), cfg=cfg)

"""Persona Core 顶层包。

该包提供可分享人设聊天的核心实现，包括配置加载、领域模型、
分享 token 编解码、本地 Bot 存储、模型服务适配与流式会话状态机。
"""

from persona_core.api.service import PersonaChatApp, ShareLinkResolution, create_default_app
from persona_core.chat.session import StreamingChatSession
from persona_core.sharing.codec import decode_bot, encode_bot

__all__ = [
    "PersonaChatApp",
    "ShareLinkResolution",
    "create_default_app",
    "StreamingChatSession",
    "encode_bot",
    "decode_bot",
]

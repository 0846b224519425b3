"""Bot 分享编码。

分享链接是共享 Bot 的唯一持久化方式：Bot 定义被直接嵌进 URL，
任何拿到链接的人都能在本地还原同一个聊天对象，无需服务端存储。

编码分三层：
1. 精简记录：只保留 n(name) / p(persona) / a(avatar_url) / i(id)。
2. 规范 JSON：sort_keys + 紧凑分隔符，保证同一 Bot 总是得到同一 token。
3. URL-safe base64（字母表 A-Z a-z 0-9 - _），去掉 "=" 填充，
   放进查询参数时无需再转义。

解码按相反顺序进行，任一层失败都抛出 DecodeFailure，不会返回残缺的 Bot。
"""

import base64
import binascii
import json
import re
from typing import Any, Dict
from uuid import uuid4

from persona_core.domain.exceptions import DecodeFailure
from persona_core.domain.models import Bot, utcnow


_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def encode_bot(bot: Bot) -> str:
    payload = {
        "n": bot.name,
        "p": bot.persona,
        "a": bot.avatar_url,
        "i": bot.id,
    }
    text = json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def decode_bot(token: str) -> Bot:
    """把分享 token 还原为 Bot。

    - created_at 总是重新生成（分享出去的会话都是“新”的）。
    - 负载中没有 id 时生成新的 id，保证返回的 Bot 一定有 id。

    Raises:
        DecodeFailure: token 为空、含非法字符、被截断或缺少必填字段。
    """

    payload = _unpack(token)

    name = payload.get("n")
    persona = payload.get("p")
    if not isinstance(name, str) or not isinstance(persona, str):
        raise DecodeFailure("Share token is missing name or persona")

    avatar_url = payload.get("a", "")
    if avatar_url is None:
        avatar_url = ""
    if not isinstance(avatar_url, str):
        raise DecodeFailure("Share token has an invalid avatar")

    bot_id = payload.get("i")
    if not isinstance(bot_id, str) or not bot_id:
        bot_id = f"b-{uuid4().hex}"

    return Bot(id=bot_id, name=name, persona=persona, avatar_url=avatar_url, created_at=utcnow())


def _unpack(token: str) -> Dict[str, Any]:
    if not isinstance(token, str) or not token:
        raise DecodeFailure("Share token is empty")
    token = token.strip()
    # 长度 %4 == 1 的 base64 不可能由合法输入产生
    if not _TOKEN_RE.match(token) or len(token) % 4 == 1:
        raise DecodeFailure("Share token is not URL-safe base64", token_length=len(token))

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        text = raw.decode("utf-8")
        payload = json.loads(text)
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, RecursionError) as e:
        raise DecodeFailure(f"Share token could not be decoded: {e}", token_length=len(token))

    if not isinstance(payload, dict):
        raise DecodeFailure("Share token payload is not an object")
    return payload

"""Bot 分享：token 编解码与分享链接。"""

from persona_core.sharing.codec import decode_bot, encode_bot
from persona_core.sharing.links import build_share_path, build_share_url, extract_share_token

__all__ = ["encode_bot", "decode_bot", "build_share_path", "build_share_url", "extract_share_token"]

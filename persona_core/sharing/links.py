"""分享链接的构造与解析。

链接形如 ``{origin}/#/chat/share?data=<token>``。前端使用 hash 路由，
因此 token 既可能出现在 URL 的 query 中，也可能出现在 ``#`` 之后的片段里。
"""

from typing import Optional
from urllib.parse import parse_qs, urlsplit

from persona_core.config.settings import settings


def build_share_path(token: str, cfg=settings) -> str:
    """站内跳转用的相对路径（不含 hash 前缀与 origin）。"""

    path = cfg.share_path.split("#", 1)[-1]
    return f"{path}?{cfg.share_query_key}={token}"


def build_share_url(token: str, origin: Optional[str] = None, cfg=settings) -> str:
    """复制给别人的完整链接。"""

    base = (origin if origin is not None else cfg.share_origin).rstrip("/")
    return f"{base}{cfg.share_path}?{cfg.share_query_key}={token}"


def extract_share_token(url: str, cfg=settings) -> Optional[str]:
    """从链接中取出分享 token；没有则返回 None。"""

    if not url:
        return None
    parts = urlsplit(url)
    queries = [parts.query]
    if "?" in parts.fragment:
        queries.append(parts.fragment.split("?", 1)[1])
    for query in queries:
        values = parse_qs(query).get(cfg.share_query_key)
        if values:
            return values[0]
    return None

"""LLM Provider 集成层。

该包下的模块负责：
- 定义模型服务抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (如 gemini_client)。
"""

from typing import Optional

from persona_core.config.settings import settings
from persona_core.domain.exceptions import ValidationError
from persona_core.providers.base import ModelService
from persona_core.providers.gemini_client import GeminiClient
from persona_core.providers.registry import get_provider_config


_CLIENTS = {
    "gemini": GeminiClient,
}


def create_provider(name: Optional[str] = None, cfg=None) -> ModelService:
    """根据名称创建模型服务实例，默认取配置中的 provider。

    名称先经过 registry 解析；registry 里没有、或没有对应客户端实现的名称
    都视为未知 provider。
    """

    cfg = cfg or settings
    provider_name = name or getattr(cfg, "default_provider", "gemini")
    try:
        provider_cfg = get_provider_config(provider_name)
    except KeyError:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=provider_name)
    client_cls = _CLIENTS.get(provider_cfg.name)
    if client_cls is None:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=provider_name)
    return client_cls(cfg)

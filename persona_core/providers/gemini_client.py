"""Gemini Provider 适配器。

使用 REST 流式端点：
- URL: {base_url}/models/{model}:streamGenerateContent?alt=sse
- 认证: x-goog-api-key: <api_key>

请求体只依赖公共字段：systemInstruction / contents / generationConfig。
响应为 SSE，每个 "data:" 行是一段 GenerateContentResponse JSON。
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List

import httpx

from persona_core.config.settings import settings
from persona_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from persona_core.domain.models import ChatHandle, ChatRequest, ChatStreamChunk, ChatUsage, HistoryTurn
from persona_core.infrastructure.logging.logger import logger
from persona_core.providers.registry import GEMINI_CONFIG, ModelConfig


class GeminiClient:
    """Gemini 模型服务实现。

    每个实例持有自己的配置（含 API key），由调用方显式构造并传递。
    """

    name = "gemini"

    def __init__(self, cfg=settings, model: str | None = None):
        self._settings = cfg
        self._model = model or getattr(cfg, "default_model", "persona-chat")

    # ---- ModelService ----

    def open_chat(self, persona: str, history: List[HistoryTurn]) -> ChatHandle:
        if self._model not in GEMINI_CONFIG.models:
            raise ValidationError(code="UNKNOWN_MODEL", message=self._model)
        temperature = getattr(self._settings, "temperature", None)
        if temperature is None:
            temperature = GEMINI_CONFIG.models[self._model].default_temperature
        return ChatHandle(persona=persona, history=list(history), model=self._model, temperature=temperature)

    async def send_and_stream(self, chat: ChatHandle, text: str) -> AsyncIterator[str]:
        req = ChatRequest(
            provider=self.name,
            model=chat.model,
            system_instruction=chat.persona,
            contents=[*chat.history, HistoryTurn(role="user", text=text)],
            temperature=chat.temperature,
        )
        async for chunk in self.chat_stream(req):
            if chunk.text:
                yield chunk.text

    # ---- 流式 ----

    async def chat_stream(self, req: ChatRequest) -> AsyncIterator[ChatStreamChunk]:
        if not getattr(self._settings, "gemini_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set")
        model_cfg = GEMINI_CONFIG.models[req.model]
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        url = f"{base.rstrip('/')}/models/{model_cfg.provider_model}:streamGenerateContent"
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    url,
                    params={"alt": "sse"},
                    json=payload,
                    headers={
                        "x-goog-api-key": self._settings.gemini_api_key,
                        "Content-Type": "application/json",
                    },
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", http_status=429)
                    if resp.status_code >= 400:
                        await resp.aread()
                        raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
                    async for line in resp.aiter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            data_str = data_str.strip()
                        if not data_str or data_str == "[DONE]":
                            continue
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        if not isinstance(payload_chunk, dict):
                            continue
                        if "error" in payload_chunk:
                            err = payload_chunk["error"]
                            message = err.get("message") if isinstance(err, dict) else None
                            raise ApiError(code="API_ERROR", message=str(message or err), http_status=502)
                        chunk = self._parse_stream_chunk(payload_chunk, req)
                        if chunk.usage or chunk.finish_reason:
                            logger.log(
                                logging.INFO,
                                "Stream finished",
                                extra={
                                    "extra": {
                                        "provider": self.name,
                                        "finish_reason": chunk.finish_reason,
                                        "total_tokens": chunk.usage.total_tokens if chunk.usage else None,
                                    }
                                },
                            )
                        yield chunk
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))

    # ---- 辅助方法 ----

    def _build_payload(self, req: ChatRequest, model_cfg: ModelConfig) -> dict:
        payload: Dict[str, Any] = {
            "contents": [self._turn_to_payload(t) for t in req.contents],
            "generationConfig": {
                "temperature": req.temperature,
                "maxOutputTokens": model_cfg.max_tokens,
            },
        }
        if req.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": req.system_instruction}]}
        return payload

    @staticmethod
    def _turn_to_payload(turn: HistoryTurn) -> Dict[str, Any]:
        return {
            "role": "model" if turn.role == "model" else "user",
            "parts": [{"text": turn.text}],
        }

    def _parse_stream_chunk(self, data: dict, req: ChatRequest) -> ChatStreamChunk:
        pieces: List[str] = []
        finish_reason = None
        candidates = data.get("candidates") or []
        if candidates:
            first = candidates[0] or {}
            for part in (first.get("content") or {}).get("parts") or []:
                text = part.get("text") if isinstance(part, dict) else None
                if text:
                    pieces.append(text)
            finish_reason = first.get("finishReason")
        usage_raw = data.get("usageMetadata") or {}
        usage = None
        if usage_raw:
            usage = ChatUsage(
                prompt_tokens=usage_raw.get("promptTokenCount", 0),
                completion_tokens=usage_raw.get("candidatesTokenCount", 0),
                total_tokens=usage_raw.get("totalTokenCount", 0),
            )
        return ChatStreamChunk(
            provider=self.name,
            model=req.model,
            text="".join(pieces),
            finish_reason=finish_reason,
            usage=usage,
        )

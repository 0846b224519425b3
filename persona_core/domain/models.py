"""统一的 Bot / 消息 / 流式结果数据模型。

本模块定义了各组件之间共享的标准数据结构：

- Bot: 用户定义的人设（名称、头像、系统指令）。
- Message: 会话记录中的一条消息，只有 user / model 两种角色。
- ChatStatus: 会话级状态（idle/loading/streaming/error）。
- HistoryTurn / ChatHandle / ChatRequest: 发给模型服务的上下文与请求。
- ChatStreamChunk: 从 Provider 解析后的流式增量。

Provider 适配器（如 GeminiClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional, List


# 模型服务只认识的两种角色
Role = Literal["user", "model"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Bot:
    """一个可分享的人设。

    - persona: 作为 system instruction 发给模型的自由文本。
    - avatar_url: 头像地址，不做校验。
    - created_at: 创建时间；从分享链接还原时总是重新生成。
    """

    id: str
    name: str
    persona: str
    avatar_url: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Message:
    """会话中的一条消息。

    实例不可变：流式追加文本时由会话用 dataclasses.replace 生成新实例替换。
    """

    id: str
    role: Role
    text: str
    timestamp: datetime = field(default_factory=utcnow)


class ChatStatus(str, Enum):
    """会话级状态，同一时刻只有一个。"""

    IDLE = "idle"
    LOADING = "loading"
    STREAMING = "streaming"
    ERROR = "error"


@dataclass
class HistoryTurn:
    """发给模型服务的一条历史消息。"""

    role: Role
    text: str


@dataclass
class ChatHandle:
    """ModelService.open_chat 返回的会话句柄。

    只在本地保存人设与历史，不占用网络连接；每次 send_and_stream
    都基于它构造一次完整请求。
    """

    persona: str
    history: List[HistoryTurn]
    model: str  # 逻辑模型名，如 "persona-chat"
    temperature: float = 0.7


@dataclass
class ChatRequest:
    """一次完整的流式生成请求。"""

    provider: str
    model: str
    system_instruction: str
    contents: List[HistoryTurn]
    temperature: float = 0.7


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatStreamChunk:
    """流式对话的单次增量。

    text 为本次新增的文本（可能为空，例如只携带 usage 的尾包）。
    """

    provider: str
    model: str
    text: str
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None

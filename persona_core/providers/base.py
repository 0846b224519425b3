"""模型服务抽象接口。

StreamingChatSession 不直接依赖具体厂商的 HTTP 接口，而是依赖此协议：

- open_chat(persona, history): 用人设和历史创建会话句柄。
- send_and_stream(chat, text): 发送新的用户消息，异步逐段产出文本；
  序列有限、不可重放，任何时刻都可能抛出传输或服务错误。

这样可以在不改会话状态机的前提下接入更多厂商，也便于测试时替换为假实现。
"""

from typing import AsyncIterator, List, Protocol

from persona_core.domain.models import ChatHandle, HistoryTurn


class ModelService(Protocol):
    name: str

    def open_chat(self, persona: str, history: List[HistoryTurn]) -> ChatHandle:
        ...

    def send_and_stream(self, chat: ChatHandle, text: str) -> AsyncIterator[str]:
        """返回异步文本片段迭代器（通常实现为 async generator）。"""

        ...

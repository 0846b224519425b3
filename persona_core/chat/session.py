"""流式会话状态机。

StreamingChatSession 独占一次会话的消息记录，负责：

- 用户提交时同步、乐观地追加用户消息和一个空的模型占位消息；
- 调用模型服务，并把逐段到达的文本按到达顺序拼接到该占位消息上；
- 维护会话级状态 ChatStatus，供界面渲染。

状态流转::

    idle/error --submit--> loading --open_chat--> streaming --end--> idle
                              |                       |
                              +-------failure---------+--> error

同一会话同一时刻最多只有一次进行中的请求：status 为 loading/streaming 时
提交会被直接拒绝，且不会对消息记录产生任何影响。
"""

from dataclasses import dataclass, replace
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Tuple
from uuid import uuid4

from persona_core.config.settings import settings
from persona_core.domain.exceptions import StreamFailure, ValidationError
from persona_core.domain.models import Bot, ChatStatus, HistoryTurn, Message
from persona_core.infrastructure.logging.logger import logger
from persona_core.providers.base import ModelService


@dataclass
class PendingTurn:
    """begin_turn 产生的一轮待执行对话。"""

    user_message: Message
    reply_id: str
    history: List[HistoryTurn]


@dataclass
class ChatSessionEvent:
    """stream_reply 产生的事件。

    kind:
        - "status": 状态变化（loading -> streaming）。
        - "delta": 收到一段文本，message 为追加后的占位消息。
        - "final": 本轮正常结束。
        - "error": 本轮失败，error 为包装后的 StreamFailure。
    """

    kind: Literal["status", "delta", "final", "error"]
    status: ChatStatus
    message_id: str
    delta_text: Optional[str] = None
    message: Optional[Message] = None
    error: Optional[StreamFailure] = None


class StreamingChatSession:
    def __init__(
        self,
        bot: Bot,
        model_service: ModelService,
        error_marker: Optional[str] = None,
    ):
        self._bot = bot
        self._model_service = model_service
        self._error_marker = error_marker or settings.error_marker
        self._messages: List[Message] = []
        self._status = ChatStatus.IDLE
        self._active_id: Optional[str] = None
        self._last_error: Optional[StreamFailure] = None
        self._log_ctx: Dict[str, Any] = {
            "session_id": f"s-{uuid4().hex}",
            "bot_id": bot.id,
            "provider": getattr(model_service, "name", "unknown"),
        }

    @property
    def bot(self) -> Bot:
        return self._bot

    @property
    def status(self) -> ChatStatus:
        return self._status

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_busy(self) -> bool:
        return self._status in (ChatStatus.LOADING, ChatStatus.STREAMING)

    @property
    def last_error(self) -> Optional[StreamFailure]:
        return self._last_error

    # ---- 同步步骤：消息记录的增改 ----

    def begin_turn(self, text: str) -> Optional[PendingTurn]:
        """接受一次用户提交；被拒绝时返回 None 且不改变任何状态。"""

        if not text or not text.strip():
            return None
        if self.is_busy:
            self._log(logging.INFO, "Rejected submit while busy", status=self._status.value)
            return None

        history = self._history()
        user_msg = Message(id=self._new_id(), role="user", text=text)
        self._messages.append(user_msg)
        placeholder = Message(id=self._new_id(), role="model", text="")
        self._messages.append(placeholder)
        self._active_id = placeholder.id
        self._last_error = None
        self._status = ChatStatus.LOADING
        self._log(
            logging.INFO,
            "Accepted user message",
            message_id=user_msg.id,
            reply_id=placeholder.id,
            history_count=len(history),
        )
        return PendingTurn(user_message=user_msg, reply_id=placeholder.id, history=history)

    def apply_fragment(self, message_id: str, fragment: str) -> Message:
        """把一段文本拼接到正在流式输出的占位消息上。"""

        if self._status is not ChatStatus.STREAMING or message_id != self._active_id:
            raise ValidationError(code="NOT_STREAMING_TARGET", message=message_id)
        idx = self._index_of(message_id)
        updated = replace(self._messages[idx], text=self._messages[idx].text + fragment)
        self._messages[idx] = updated
        return updated

    def finish_turn(self, message_id: str) -> Message:
        if message_id != self._active_id:
            raise ValidationError(code="NOT_STREAMING_TARGET", message=message_id)
        self._active_id = None
        self._status = ChatStatus.IDLE
        return self._messages[self._index_of(message_id)]

    def fail_turn(self, message_id: str, error: StreamFailure) -> Message:
        """冻结占位消息：已有的部分文本原样保留，没有文本时写入错误提示。"""

        if message_id != self._active_id:
            raise ValidationError(code="NOT_STREAMING_TARGET", message=message_id)
        idx = self._index_of(message_id)
        msg = self._messages[idx]
        if not msg.text:
            msg = replace(msg, text=self._error_marker)
            self._messages[idx] = msg
        self._active_id = None
        self._last_error = error
        self._status = ChatStatus.ERROR
        return msg

    # ---- 异步步骤：调用模型服务 ----

    async def stream_reply(self, text: str) -> AsyncIterator[ChatSessionEvent]:
        """执行一轮对话并逐步产出事件；提交被拒绝时不产出任何事件。"""

        turn = self.begin_turn(text)
        if turn is None:
            return

        start_time = time.time()
        reply_id = turn.reply_id
        received = 0
        try:
            chat = self._model_service.open_chat(self._bot.persona, turn.history)
            self._status = ChatStatus.STREAMING
            yield ChatSessionEvent(kind="status", status=self._status, message_id=reply_id)

            async for fragment in self._model_service.send_and_stream(chat, turn.user_message.text):
                if not fragment:
                    continue
                received += 1
                msg = self.apply_fragment(reply_id, fragment)
                yield ChatSessionEvent(
                    kind="delta",
                    status=self._status,
                    message_id=reply_id,
                    delta_text=fragment,
                    message=msg,
                )
        except Exception as e:
            failure = e if isinstance(e, StreamFailure) else StreamFailure(str(e), cause=e)
            msg = self.fail_turn(reply_id, failure)
            self._log(
                logging.ERROR,
                "Model stream failed",
                reply_id=reply_id,
                fragments=received,
                error_type=type(e).__name__,
                error=str(e),
            )
            yield ChatSessionEvent(kind="error", status=self._status, message_id=reply_id, message=msg, error=failure)
            return
        except BaseException as e:
            # 消费方中途放弃（aclose / 任务取消）：收尾本轮后继续向外抛，不再产出事件
            if self._active_id == reply_id:
                self.fail_turn(reply_id, StreamFailure("Model stream interrupted", cause=e))
            self._log(
                logging.WARNING,
                "Model stream interrupted",
                reply_id=reply_id,
                fragments=received,
                error_type=type(e).__name__,
            )
            raise

        msg = self.finish_turn(reply_id)
        self._log(
            logging.INFO,
            "Completed model reply",
            reply_id=reply_id,
            fragments=received,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        yield ChatSessionEvent(kind="final", status=self._status, message_id=reply_id, message=msg)

    async def submit(self, text: str) -> Optional[Message]:
        """提交一条用户消息并等待回复完成。

        Returns:
            本轮最终的模型消息；提交被拒绝时返回 None。模型服务的错误不会抛出，
            而是体现在返回消息的文本与 status 上。
        """

        final: Optional[Message] = None
        async for event in self.stream_reply(text):
            if event.kind in ("final", "error"):
                final = event.message
        return final

    # ---- 辅助方法 ----

    def _history(self) -> List[HistoryTurn]:
        return [
            HistoryTurn(role="model" if m.role == "model" else "user", text=m.text)
            for m in self._messages
            if m.text.strip()
        ]

    def _index_of(self, message_id: str) -> int:
        for idx, m in enumerate(self._messages):
            if m.id == message_id:
                return idx
        raise ValidationError(code="MESSAGE_NOT_FOUND", message=message_id)

    @staticmethod
    def _new_id() -> str:
        return f"m-{uuid4().hex}"

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload = dict(self._log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

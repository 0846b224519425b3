import dataclasses
from datetime import datetime, timezone

import pytest

from persona_core.domain.models import Bot, ChatStatus, HistoryTurn, Message


def test_models_exist():
    now = datetime.now(timezone.utc)
    bot = Bot(id="b1", name="Bot", persona="p", avatar_url="", created_at=now)
    assert bot.created_at == now
    msg = Message(id="m1", role="user", text="hi")
    assert msg.timestamp.tzinfo is not None
    turn = HistoryTurn(role="model", text="ok")
    assert turn.role == "model"


def test_message_is_immutable():
    msg = Message(id="m1", role="model", text="")
    with pytest.raises(dataclasses.FrozenInstanceError):
        msg.text = "changed"
    extended = dataclasses.replace(msg, text="Hel")
    assert msg.text == ""
    assert extended.id == msg.id and extended.role == "model"


def test_chat_status_values():
    assert [s.value for s in ChatStatus] == ["idle", "loading", "streaming", "error"]
    assert ChatStatus("streaming") is ChatStatus.STREAMING

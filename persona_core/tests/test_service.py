"""测试 PersonaChatApp 的创建 / 分享 / 打开聊天流程。"""

import base64
from pathlib import Path

import pytest

from persona_core.api.service import INVALID_LINK_ALERT, PersonaChatApp, create_default_app
from persona_core.domain.exceptions import ValidationError
from persona_core.domain.models import ChatHandle, ChatStatus
from persona_core.infrastructure.storage.kv_store import MemoryKeyValueStore
from persona_core.infrastructure.storage.local_bot_store import LocalBotStore
from persona_core.providers import create_provider
from persona_core.providers.gemini_client import GeminiClient


class AppSettings:
    share_origin = "https://persona.example"
    share_path = "/#/chat/share"
    share_query_key = "data"
    home_path = "/"
    default_avatar_url = "https://ui-avatars.com/api/?name={name}&background=random"
    error_marker = "连接失败"


class EchoService:
    name = "echo"

    def __init__(self):
        self.personas = []

    def open_chat(self, persona, history):
        self.personas.append(persona)
        return ChatHandle(persona=persona, history=list(history), model="persona-chat")

    async def send_and_stream(self, chat, text):
        for word in text.split(" "):
            yield word.upper() + " "


def _app(service=None):
    return PersonaChatApp(LocalBotStore(MemoryKeyValueStore()), service or EchoService(), cfg=AppSettings())


def test_create_bot_saves_and_returns_chat_path():
    app = _app()
    bot, path = app.create_bot("  Tech Support ", "Answer briefly.")
    assert bot.name == "Tech Support"
    assert bot.id.startswith("b-")
    assert bot.avatar_url == "https://ui-avatars.com/api/?name=Tech Support&background=random"
    assert path.startswith("/chat/share?data=")
    assert app.list_bots() == [bot]

    resolution = app.resolve_share_link(path)
    assert resolution.ok
    assert resolution.bot.id == bot.id
    assert resolution.bot.persona == "Answer briefly."


def test_create_bot_keeps_custom_avatar():
    bot, _ = _app().create_bot("Bot", "p", avatar_url="https://example.com/me.png")
    assert bot.avatar_url == "https://example.com/me.png"


@pytest.mark.parametrize("name,persona", [("", "p"), ("  ", "p"), ("Bot", ""), ("Bot", " \n")])
def test_create_bot_requires_name_and_persona(name, persona):
    app = _app()
    with pytest.raises(ValidationError):
        app.create_bot(name, persona)
    assert app.list_bots() == []


def test_share_url_and_delete():
    app = _app()
    bot, _ = app.create_bot("Bot", "p")
    url = app.share_url(bot)
    assert url.startswith("https://persona.example/#/chat/share?data=")
    assert app.resolve_share_link(url).bot.name == "Bot"
    assert app.chat_path(bot) == url[len("https://persona.example/#"):]

    app.delete_bot(bot.id)
    assert app.list_bots() == []
    # 分享出去的链接不依赖本地记录
    assert app.resolve_share_link(url).ok


def test_missing_token_redirects_home_without_alert():
    resolution = _app().resolve_share_link("https://persona.example/#/chat/share")
    assert not resolution.ok
    assert resolution.redirect_to == "/"
    assert resolution.alert is None


def test_invalid_token_redirects_home_with_alert():
    app = _app()
    _, path = app.create_bot("Bot", "p")
    for url in ("https://persona.example/#/chat/share?data=%%%", "/chat/share?data=" + path.split("=", 1)[1][:-3]):
        resolution = app.resolve_share_link(url)
        assert resolution.bot is None
        assert resolution.redirect_to == "/"
        assert resolution.alert == INVALID_LINK_ALERT


def test_deeply_nested_token_redirects_with_alert():
    token = base64.urlsafe_b64encode(b"[" * 100000).decode("ascii").rstrip("=")
    session, resolution = _app().open_chat("/chat/share?data=" + token)
    assert session is None
    assert resolution.redirect_to == "/"
    assert resolution.alert == INVALID_LINK_ALERT


def test_open_chat_invalid_link_returns_no_session():
    session, resolution = _app().open_chat("/chat/share?data=bad!")
    assert session is None
    assert resolution.alert == INVALID_LINK_ALERT


@pytest.mark.asyncio
async def test_open_chat_and_talk():
    service = EchoService()
    app = _app(service)
    bot, path = app.create_bot("Echo", "Repeat loudly.")
    session, resolution = app.open_chat(path)
    assert session is not None
    assert session.bot.name == "Echo"
    assert session.status is ChatStatus.IDLE

    reply = await session.submit("hello world")
    assert reply.text == "HELLO WORLD "
    assert service.personas == ["Repeat loudly."]


def test_create_default_app(tmp_path: Path, monkeypatch):
    class DefaultSettings(AppSettings):
        storage_root = str(tmp_path / ".storage")
        default_provider = "gemini"
        default_model = "persona-chat"
        gemini_api_key = None
        http_timeout = 1.0
        temperature = 0.7

    created = []

    def recording_create_provider(name=None, cfg=None):
        provider = create_provider(name, cfg)
        created.append(provider)
        return provider

    monkeypatch.setattr("persona_core.api.service.create_provider", recording_create_provider)
    app = create_default_app(DefaultSettings())
    assert len(created) == 1
    assert isinstance(created[0], GeminiClient)
    bot, _ = app.create_bot("Bot", "p")
    assert [b.id for b in create_default_app(DefaultSettings()).list_bots()] == [bot.id]

"""Offline fakes for the HTTP session and the Telegram bot."""

import json
from types import SimpleNamespace

import pytest

from auraxbot.storage import RegistryStore


class FakeResponse:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self, encoding=None, errors="strict"):
        if isinstance(self.body, bytes):
            return self.body.decode(encoding or "utf-8", errors)
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body)

    async def json(self, content_type="application/json"):
        if isinstance(self.body, str):
            return json.loads(self.body)
        return self.body


class _Request:
    def __init__(self, outcome):
        self.outcome = outcome

    async def __aenter__(self):
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Answers each ``get`` with the next queued outcome.

    An outcome is a ``FakeResponse``, a ``(status, body)`` tuple, a bare body
    (served with status 200) or an exception raised on entering the request.
    The last outcome repeats once the queue runs dry.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, params=None):
        self.calls.append((url, params))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, tuple):
            outcome = FakeResponse(*outcome)
        elif not isinstance(outcome, (FakeResponse, BaseException)):
            outcome = FakeResponse(200, outcome)
        return _Request(outcome)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def close(self):
        pass


class FakeBot:
    """Records sink calls. ``errors[(method, chat_id)]`` is raised instead of acting."""

    def __init__(self, titles=None, member_status="administrator"):
        self.titles = dict(titles or {})
        self.member_status = member_status
        self.edits = []
        self.renames = []
        self.get_chat_calls = []
        self.sent = []
        self.errors = {}

    def _maybe_raise(self, method, chat_id):
        error = self.errors.get((method, chat_id))
        if error is not None:
            raise error

    async def edit_message_text(self, text, chat_id=None, message_id=None, parse_mode=None):
        self._maybe_raise("edit_message_text", chat_id)
        self.edits.append((chat_id, message_id, text))

    async def get_chat(self, chat_id):
        self.get_chat_calls.append(chat_id)
        self._maybe_raise("get_chat", chat_id)
        return SimpleNamespace(id=chat_id, title=self.titles.get(chat_id))

    async def set_chat_title(self, chat_id, title):
        self._maybe_raise("set_chat_title", chat_id)
        self.renames.append((chat_id, title))
        self.titles[chat_id] = title

    async def get_chat_member(self, chat_id, user_id):
        return SimpleNamespace(status=self.member_status)

    async def send_message(self, chat_id, text, **kwargs):
        self.sent.append((chat_id, text))


class FakeMessage:
    def __init__(self):
        self.replies = []

    async def reply_text(self, text, **kwargs):
        self.replies.append(text)
        return SimpleNamespace(message_id=1000 + len(self.replies))


def make_update(chat_id=-100, chat_type="supergroup", user_id=7):
    return SimpleNamespace(
        effective_chat=SimpleNamespace(id=chat_id, type=chat_type),
        effective_user=SimpleNamespace(id=user_id),
        message=FakeMessage(),
    )


def make_context(bot, store, args=()):
    return SimpleNamespace(bot=bot, args=list(args), bot_data={"registry": store})


@pytest.fixture
def store(tmp_path):
    registry = RegistryStore(str(tmp_path / "registry.db")).open()
    yield registry
    registry.close()


@pytest.fixture
def bot():
    return FakeBot()

"""Sink adapter: message edits, idempotent renames and error classification."""

import pytest
from telegram.error import BadRequest, Forbidden, NetworkError

from auraxbot.sinks import (
    MAX_TITLE_LENGTH,
    Rendering,
    SinkResult,
    apply_rendering,
    classify_error,
    rename_chat,
)
from auraxbot.state import EntityClass, SinkKind
from auraxbot.storage import RegistryRow


def message_row(chat_id=-1, message_id=10):
    return RegistryRow(1, EntityClass.ALERT, "1-1", chat_id, message_id, SinkKind.MESSAGE)


def channel_row(chat_id=-2, variant=None):
    return RegistryRow(2, EntityClass.OUTFIT_TRACKER, "ps2:v2|1", chat_id, None, SinkKind.CHANNEL, variant=variant)


def test_classify_error():
    assert classify_error(Forbidden("Forbidden: bot was kicked from the supergroup chat")) == SinkResult.NOT_FOUND
    assert classify_error(BadRequest("Message to edit not found")) == SinkResult.NOT_FOUND
    assert classify_error(BadRequest("Chat not found")) == SinkResult.NOT_FOUND
    assert classify_error(BadRequest("Not enough rights to change chat title")) == SinkResult.FORBIDDEN
    assert classify_error(BadRequest("Can't parse entities")) == SinkResult.OTHER_ERROR
    assert classify_error(NetworkError("timed out")) == SinkResult.OTHER_ERROR


@pytest.mark.asyncio
async def test_rename_is_skipped_when_title_matches(bot):
    bot.titles[-2] = "Connery: 30 online"
    assert await rename_chat(bot, -2, "Connery: 30 online") == SinkResult.OK
    assert bot.renames == []

    assert await rename_chat(bot, -2, "Connery: 31 online") == SinkResult.OK
    assert bot.renames == [(-2, "Connery: 31 online")]


@pytest.mark.asyncio
async def test_rename_clips_long_titles(bot):
    await rename_chat(bot, -2, "x" * 300)
    assert len(bot.renames[0][1]) == MAX_TITLE_LENGTH


@pytest.mark.asyncio
async def test_message_not_modified_is_ok(bot):
    bot.errors[("edit_message_text", -1)] = BadRequest(
        "Message is not modified: specified new message content and reply markup are exactly the same"
    )
    assert await apply_rendering(bot, Rendering("same"), message_row()) == SinkResult.OK


@pytest.mark.asyncio
async def test_apply_rendering_edits_message(bot):
    assert await apply_rendering(bot, Rendering("<b>hi</b>"), message_row()) == SinkResult.OK
    assert bot.edits == [(-1, 10, "<b>hi</b>")]


@pytest.mark.asyncio
async def test_apply_rendering_uses_row_variant(bot):
    rendering = Rendering("🟣 BHO: 4 online", variants={"faction": "🟣 BHO: 4 online", "plain": "BHO: 4 online"})
    await apply_rendering(bot, rendering, channel_row(variant="plain"))
    assert bot.renames == [(-2, "BHO: 4 online")]


@pytest.mark.asyncio
async def test_apply_rendering_never_raises(bot):
    bot.errors[("get_chat", -2)] = Forbidden("Forbidden: bot is not a member of the channel chat")
    assert await apply_rendering(bot, Rendering("t"), channel_row()) == SinkResult.NOT_FOUND

    bot.errors[("get_chat", -2)] = BadRequest("Not enough rights to change chat title")
    assert await apply_rendering(bot, Rendering("t"), channel_row()) == SinkResult.FORBIDDEN

    bot.errors[("get_chat", -2)] = RuntimeError("boom")
    assert await apply_rendering(bot, Rendering("t"), channel_row()) == SinkResult.OTHER_ERROR

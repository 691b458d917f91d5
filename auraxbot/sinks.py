from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from telegram.error import BadRequest, Forbidden, TelegramError

from .config import logger
from .state import SinkKind
from .storage import RegistryRow


# Telegram caps chat titles at 128 characters
MAX_TITLE_LENGTH = 128

NOT_FOUND_MARKERS = (
    "message to edit not found",
    "message_id_invalid",
    "message can't be edited",
    "chat not found",
    "chat_id_invalid",
    "peer_id_invalid",
)

FORBIDDEN_MARKERS = (
    "not enough rights",
    "have no rights",
    "chat_admin_required",
    "need administrator rights",
)


class SinkResult(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    OTHER_ERROR = "other_error"


@dataclass(frozen=True)
class Rendering:
    """Output ready for a sink. ``variants`` hold alternative texts rows can ask for."""
    text: str
    variants: Dict[str, str] = field(default_factory=dict)

    def text_for(self, row: RegistryRow) -> str:
        if row.variant and row.variant in self.variants:
            return self.variants[row.variant]
        return self.text


def classify_error(error: Exception) -> SinkResult:
    if isinstance(error, Forbidden):
        # Bot was kicked, blocked or removed from the chat
        return SinkResult.NOT_FOUND
    if isinstance(error, BadRequest):
        message = error.message.lower()
        if any(marker in message for marker in NOT_FOUND_MARKERS):
            return SinkResult.NOT_FOUND
        if any(marker in message for marker in FORBIDDEN_MARKERS):
            return SinkResult.FORBIDDEN
    return SinkResult.OTHER_ERROR


async def edit_message(bot, chat_id: int, message_id: int, text: str) -> SinkResult:
    try:
        await bot.edit_message_text(text, chat_id=chat_id, message_id=message_id, parse_mode="HTML")
    except BadRequest as e:
        if "message is not modified" in e.message.lower():
            return SinkResult.OK
        raise
    return SinkResult.OK


async def rename_chat(bot, chat_id: int, title: str) -> SinkResult:
    """Set the chat title, skipping the call when it already matches."""
    title = title[:MAX_TITLE_LENGTH]
    chat = await bot.get_chat(chat_id)
    if chat.title == title:
        logger.debug(f"Chat {chat_id} title unchanged, skipping rename")
        return SinkResult.OK
    await bot.set_chat_title(chat_id, title)
    return SinkResult.OK


async def apply_rendering(bot, rendering: Rendering, row: RegistryRow) -> SinkResult:
    """Push ``rendering`` to the sink described by ``row``. Never raises."""
    text = rendering.text_for(row)
    try:
        if row.sink_kind == SinkKind.MESSAGE:
            return await edit_message(bot, row.chat_id, row.message_id, text)
        return await rename_chat(bot, row.chat_id, text)
    except TelegramError as e:
        result = classify_error(e)
        if result == SinkResult.NOT_FOUND:
            logger.info(f"Sink gone for {row.entity_class.value} row {row.row_id} (chat {row.chat_id}): {e.message}")
        elif result == SinkResult.FORBIDDEN:
            logger.warning(f"Missing permissions for row {row.row_id} in chat {row.chat_id}: {e.message}")
        else:
            logger.error(f"Error updating row {row.row_id} in chat {row.chat_id}: {e}")
        return result
    except Exception as e:
        logger.error(f"Unexpected error updating row {row.row_id} in chat {row.chat_id}: {type(e).__name__}: {e}")
        return SinkResult.OTHER_ERROR

from __future__ import annotations

from typing import Optional

from telegram import ChatMember, Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from .config import ALLOWED_USER_ID, logger


GROUP_TYPES = ("group", "supergroup")


async def _member_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Optional[str]:
    if not update.effective_chat or not update.effective_user:
        return None
    try:
        member = await context.bot.get_chat_member(update.effective_chat.id, update.effective_user.id)
    except TelegramError as e:
        logger.debug(f"Could not look up member {update.effective_user.id} in chat {update.effective_chat.id}: {e}")
        return None
    return member.status


async def is_group_member(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    return await _member_status(update, context) in (ChatMember.MEMBER, ChatMember.ADMINISTRATOR, ChatMember.OWNER)


async def is_group_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    return await _member_status(update, context) in (ChatMember.ADMINISTRATOR, ChatMember.OWNER)


async def is_authorized(update: Update, context: ContextTypes.DEFAULT_TYPE, admin: bool) -> bool:
    """Private chats: only ALLOWED_USER_ID. Groups: admins, or any member when ``admin`` is False."""
    if not update.effective_user or not update.effective_chat:
        return False
    chat = update.effective_chat
    if chat.type == "private":
        return update.effective_user.id == ALLOWED_USER_ID
    if chat.type in GROUP_TYPES:
        if admin:
            return await is_group_admin(update, context)
        return await is_group_member(update, context)
    return False


async def guard_admin(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    if not await is_authorized(update, context, admin=True):
        if update.effective_chat:
            await context.bot.send_message(update.effective_chat.id, "❌ Only chat admins can manage trackers.")
        return False
    return True


async def guard_read(update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
    if not await is_authorized(update, context, admin=False):
        if update.effective_chat and update.effective_chat.type == "private":
            await context.bot.send_message(update.effective_chat.id, "❌ Not authorized.")
        return False
    return True

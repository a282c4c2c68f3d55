"""
Модуль для обработки ошибок, дошедших до диалоговой оболочки.
Обеспечивает дружественные сообщения для оператора и детальные уведомления для админов.
"""

import html
import logging
import traceback
from datetime import datetime
from typing import Optional

import httpx
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import ErrorEvent, Message, User

from catalog_bot.api.storage import StorageError

logger = logging.getLogger(__name__)


class ErrorHandler:
    """Класс для централизованной обработки ошибок"""

    # Дружественные сообщения для операторов
    USER_MESSAGES = {
        'storage_error': (
            "😔 Sorry, the product could not be saved or the image could not be uploaded.\n\n"
            "Possible reasons:\n"
            "• Supabase storage or database is temporarily unavailable\n"
            "• the bucket or table is misconfigured\n\n"
            "Please try again in a minute. The admins have been notified. 🛠️"
        ),
        'network_error': (
            "😔 Sorry, an external service did not respond in time.\n\n"
            "Please repeat the request in 1-2 minutes.\n\n"
            "The admins have been notified. 🛠️"
        ),
        'telegram_error': (
            "😔 Sorry, the message could not be delivered.\n\n"
            "Possible reasons:\n"
            "• the image is too large\n"
            "• temporary Telegram limits\n\n"
            "Please try again."
        ),
        'unknown_error': (
            "😔 Sorry, something unexpected happened.\n\n"
            "The admins have been notified. Use /cancel and start again with /smartadd. 🙏"
        ),
    }

    def __init__(self, bot: Bot, admin_chat_id: Optional[str] = None):
        """
        Инициализация обработчика ошибок.

        Args:
            bot: Экземпляр aiogram Bot для отправки уведомлений
            admin_chat_id: ID чата администратора для уведомлений об ошибках
        """
        self.bot = bot
        # Преобразуем admin_chat_id в int если это строка с числом
        self.admin_chat_id: Optional[int] = None
        if admin_chat_id:
            try:
                self.admin_chat_id = int(admin_chat_id)
            except (ValueError, TypeError):
                logger.warning(f"Invalid ADMIN_CHAT_ID format: {admin_chat_id}. Expected numeric string or int.")

    async def handle_error(
        self,
        error: Exception,
        message: Optional[Message],
        context: str = "",
        error_type: Optional[str] = None,
        user: Optional[User] = None,
    ) -> None:
        """
        Обрабатывает ошибку: логирует, уведомляет админа, отправляет дружественное сообщение оператору.

        Args:
            error: Исключение, которое произошло
            message: Сообщение, в чат которого нужно ответить (может отсутствовать)
            context: Дополнительный контекст (например, имя товара или обработчик)
            error_type: Тип ошибки для выбора сообщения; по умолчанию определяется classify_error
            user: Автор действия, если он отличается от автора message (callback-кнопки)
        """
        error_type = error_type or self.classify_error(error)
        tb = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        author = user or (message.from_user if message else None)

        error_info = {
            'timestamp': datetime.now().isoformat(timespec="seconds"),
            'user_id': author.id if author else None,
            'username': author.username if author else None,
            'chat_id': message.chat.id if message else None,
            'message_text': (message.text or message.caption or "") if message else "",
            'error_type': error_type,
            'error_class': error.__class__.__name__,
            'error_message': str(error),
            'context': context,
            'traceback': tb,
        }

        logger.error(
            "Unhandled %s in bot (%s): %s [user=%s chat=%s context=%s]",
            error_info['error_class'],
            error_type,
            error_info['error_message'],
            error_info['user_id'],
            error_info['chat_id'],
            context or "-",
        )

        if message is not None:
            try:
                await message.answer(self.USER_MESSAGES.get(error_type, self.USER_MESSAGES['unknown_error']))
            except TelegramAPIError as send_error:
                logger.error(f"Failed to send error message to user: {send_error}")

        await self._notify_admin(error_info)

    async def _notify_admin(self, error_info: dict) -> None:
        """
        Отправляет уведомление администратору о произошедшей ошибке.

        Args:
            error_info: Словарь с информацией об ошибке
        """
        if not self.admin_chat_id:
            logger.warning("Admin chat ID not configured, skipping admin notification")
            return

        admin_message = (
            "🚨 <b>CATALOG BOT ERROR</b> 🚨\n\n"
            f"⏰ <b>Time:</b> {error_info['timestamp']}\n"
            f"👤 <b>Operator:</b> {error_info['user_id']} "
            f"(@{error_info['username'] or 'unknown'})\n"
            f"💬 <b>Chat:</b> {error_info['chat_id']}\n"
            f"📝 <b>Message:</b> <code>{html.escape(error_info['message_text'][:100])}</code>\n\n"
            f"❗ <b>Type:</b> {error_info['error_type']}\n"
            f"🐛 <b>Class:</b> <code>{error_info['error_class']}</code>\n"
            f"📄 <b>Details:</b> <code>{html.escape(error_info['error_message'][:200])}</code>\n"
        )
        if error_info['context']:
            admin_message += f"\n🔗 <b>Context:</b> <code>{html.escape(error_info['context'][:100])}</code>\n"

        # Telegram ограничивает длину сообщения, поэтому берём хвост traceback
        traceback_preview = html.escape(error_info['traceback'][-3000:])

        try:
            await self.bot.send_message(chat_id=self.admin_chat_id, text=admin_message, parse_mode="HTML")
            await self.bot.send_message(
                chat_id=self.admin_chat_id,
                text=f"<b>Traceback:</b>\n<pre>{traceback_preview}</pre>",
                parse_mode="HTML",
            )
            logger.info(f"Admin notification sent successfully to chat_id: {self.admin_chat_id}")
        except TelegramAPIError as e:
            if "chat not found" in str(e).lower():
                logger.error(
                    f"Failed to send admin notification: chat not found. "
                    f"Chat ID: {self.admin_chat_id}. "
                    f"Проверьте, что бот запущен в этом чате и ADMIN_CHAT_ID указан числом."
                )
            else:
                logger.error(f"Failed to send admin notification: {e}")

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Классифицирует ошибку для выбора подходящего сообщения оператору.

        Returns:
            Тип ошибки (ключ для USER_MESSAGES)
        """
        if isinstance(error, StorageError):
            return 'storage_error'
        if isinstance(error, (httpx.HTTPError, TimeoutError, ConnectionError)):
            return 'network_error'
        if isinstance(error, TelegramAPIError):
            return 'telegram_error'
        return 'unknown_error'


# Глобальный обработчик (инициализируется в main.py)
error_handler: Optional[ErrorHandler] = None


def init_error_handler(bot: Bot, admin_chat_id: Optional[str] = None) -> ErrorHandler:
    """
    Инициализирует глобальный обработчик ошибок.

    Args:
        bot: Экземпляр aiogram Bot
        admin_chat_id: ID чата администратора

    Returns:
        Экземпляр ErrorHandler
    """
    global error_handler
    error_handler = ErrorHandler(bot, admin_chat_id)
    if error_handler.admin_chat_id:
        logger.info(f"Admin chat ID configured: {error_handler.admin_chat_id}.")
    return error_handler


async def on_dispatcher_error(event: ErrorEvent) -> bool:
    """Обработчик dp.errors: всё, что не поймали хендлеры, попадает сюда."""
    update = event.update
    message: Optional[Message] = update.message
    user: Optional[User] = message.from_user if message else None
    context = "message"
    if message is None and update.callback_query is not None:
        callback = update.callback_query
        message = callback.message if isinstance(callback.message, Message) else None
        user = callback.from_user
        context = f"callback:{callback.data}"

    if error_handler is None:
        logger.error("Unhandled error before error handler init: %r", event.exception, exc_info=event.exception)
        return True

    await error_handler.handle_error(event.exception, message, context=context, user=user)
    return True

"""
==============================================================================
PRODUCT CATALOG BOT - MAIN ENTRY POINT
==============================================================================
Главная точка входа приложения.
Инициализирует и запускает Telegram бота для наполнения каталога товаров.
==============================================================================
"""

import asyncio
import logging
from pathlib import Path

from aiogram import Bot, Dispatcher
from aiogram.types import (
    BotCommand,
    BotCommandScopeDefault,
    MenuButtonCommands,
)

from catalog_bot.core.config import settings
from catalog_bot.core.logging_config import setup_logging
from catalog_bot.bot import init_error_handler, on_dispatcher_error, router

# Конфигурация логирования
setup_logging(
    settings.LOG_LEVEL,
    debug=settings.DEBUG_MODE,
    log_dir=Path(settings.LOG_DIR),
    retention_days=settings.LOG_RETENTION_DAYS,
    max_total_mb=settings.LOG_MAX_TOTAL_MB,
)


async def setup_bot_menu(bot: Bot) -> None:
    """
    Настраивает список команд бота, отображаемых в боковом меню Telegram.
    """
    commands = [
        BotCommand(command="start", description="Choose a table"),
        BotCommand(command="smartadd", description="Add a product from free text"),
        BotCommand(command="list", description="Latest products"),
        BotCommand(command="update", description="Edit a product: /update <id>"),
        BotCommand(command="toggle", description="Activate / deactivate: /toggle <id>"),
        BotCommand(command="table", description="Switch table"),
        BotCommand(command="cancel", description="Cancel the current step"),
    ]
    await bot.set_my_commands(commands, scope=BotCommandScopeDefault())
    await bot.set_chat_menu_button(menu_button=MenuButtonCommands())


async def main():
    """
    Основная асинхронная функция для запуска Telegram бота.

    Выполняет следующие шаги:
    1. Инициализирует бота с токеном из настроек
    2. Создаёт диспетчер для обработки сообщений
    3. Инициализирует систему обработки ошибок с уведомлениями админу
    4. Регистрирует обработчики сообщений (роутеры)
    5. Удаляет старые вебхуки (если были)
    6. Запускает long polling для получения обновлений
    """
    if not settings.admin_ids:
        logging.warning("ADMIN_IDS is empty: the bot will ignore every message")

    bot = Bot(token=settings.BOT_TOKEN)
    await setup_bot_menu(bot)
    dp = Dispatcher()

    # Инициализация глобального обработчика ошибок
    admin_chat_id = settings.ADMIN_CHAT_ID if settings.ADMIN_CHAT_ID else None
    init_error_handler(bot, admin_chat_id)
    dp.errors.register(on_dispatcher_error)
    logging.info(f"Error handler initialized. Admin notifications: {'enabled' if admin_chat_id else 'disabled'}")

    dp.include_router(router)

    # Удаление вебхуков (если были) и запуск поллинга для получения обновлений
    await bot.delete_webhook(drop_pending_updates=True)
    logging.info("Product bot running with /smartadd and /update 🚀")
    try:
        await dp.start_polling(bot)
    finally:
        await dp.storage.close()
        await bot.session.close()


def run() -> None:
    """Точка входа консольной команды catalog-bot."""
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.info("Работа завершена по прерыванию.")


if __name__ == "__main__":
    run()

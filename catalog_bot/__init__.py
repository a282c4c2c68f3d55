"""
Product Catalog Bot - Source Code Package
=========================================
Telegram бот для наполнения каталога цифровых товаров (products / exclusive_products).

Структура:
- bot/       - Telegram бот (handlers, keyboards, error handling)
- api/       - Внешние клиенты (веб, поиск, LLM, генераторы изображений, Supabase)
- services/  - Конвейеры обогащения текста и подбора изображения
- core/      - Конфигурация, логирование, модели данных
- utils/     - Вспомогательные утилиты
"""

__version__ = "1.0.0"

"""
==============================================================================
PRODUCT CATALOG BOT - CONFIGURATION
==============================================================================
Управление конфигурацией через переменные окружения.
Использует Pydantic Settings для валидации и загрузки из .env файла.
==============================================================================
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseSettings):
    """
    Класс для управления настройками приложения.

    Автоматически загружает переменные окружения из файла .env
    с валидацией типов и значений по умолчанию.

    Attributes:
        BOT_TOKEN (str): Токен Telegram бота от @BotFather
        SUPABASE_URL (str): URL проекта Supabase (хранилище и таблицы товаров)
        SUPABASE_KEY (str): Сервисный ключ Supabase
        ADMIN_IDS (str): Telegram ID операторов через запятую
        GROQ_API_KEY (str): API ключ Groq (OpenAI-совместимый)
        GEMINI_API_KEYS (str): Пул ключей Gemini через запятую (ротация по кругу)
        HUGGING_FACE_API_KEY (str): Токен Hugging Face Inference API
        DEEPAI_API_KEY (str): API ключ DeepAI
        CLOUDFLARE_ACCOUNT_ID (str): Аккаунт Cloudflare Workers AI
        CLOUDFLARE_API_TOKEN (str): Токен Cloudflare Workers AI
        TEXT_PROVIDER_ORDER (str): Порядок текстовых провайдеров через запятую
        IMAGE_PROVIDER_ORDER (str): Порядок генераторов изображений через запятую
        TEXT_RETRIES (int): Количество попыток на один текстовый провайдер
        IMAGE_RETRIES (int): Количество попыток на один генератор изображений
        RETRY_BACKOFF (float): Базовая задержка перед повтором (сек), экспоненциальный рост
    """
    BOT_TOKEN: str  # Токен Telegram бота
    ADMIN_IDS: str = ""  # Операторы бота (список Telegram ID через запятую)
    ADMIN_CHAT_ID: str = ""  # ID чата для уведомлений об ошибках (необязательно)

    # Supabase: хранилище изображений и таблицы products / exclusive_products
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_BUCKET_PRODUCTS: str = "images"
    SUPABASE_BUCKET_EXCLUSIVE: str = "exclusiveproduct-images"
    SUPABASE_FOLDER_PRODUCTS: str = "products"
    SUPABASE_FOLDER_EXCLUSIVE: str = "exclusive-products"

    # Текстовые провайдеры
    GROQ_API_KEY: str = ""
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    GROQ_TEXT_MODEL: str = "llama-3.1-70b-versatile"
    POLLINATIONS_TEXT_URL: str = "https://text.pollinations.ai/openai/v1"
    POLLINATIONS_TEXT_MODEL: str = "searchgpt"
    GEMINI_API_KEYS: str = ""  # Пул ключей через запятую
    GEMINI_API_KEY: str = ""  # Одиночный ключ (используется, если пул пуст)
    GEMINI_TEXT_MODEL: str = "gemini-1.5-pro-latest"
    GEMINI_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
    HUGGING_FACE_API_KEY: str = ""
    HF_TEXT_MODEL: str = "mistralai/Mixtral-8x7B-Instruct-v0.1"
    HF_INFERENCE_BASE: str = "https://api-inference.huggingface.co/models"
    TEXT_PROVIDER_ORDER: str = ""  # Пусто = groq,gemini,pollinations
    TEXT_FALLBACK_PROVIDER: str = "huggingface"  # Последний рубеж после основного порядка

    # Генерация изображений
    HF_IMAGE_MODEL: str = "stabilityai/stable-diffusion-xl-base-1.0"
    DEEPAI_API_KEY: str = ""
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""
    CLOUDFLARE_IMAGE_MODEL: str = "@cf/black-forest-labs/flux-1-schnell"
    IMAGE_PROVIDER_ORDER: str = ""  # Пусто = cloudflare,hf,deepai,pollinations
    IMAGE_TEXT_OVERLAY: bool = False  # Накладывать название товара поверх сгенерированного фона

    # Повторы и таймауты внешних запросов (секунды)
    TEXT_RETRIES: int = Field(default=2, ge=1)
    IMAGE_RETRIES: int = Field(default=2, ge=1)
    RETRY_BACKOFF: float = Field(default=0.8, ge=0)
    FETCH_TIMEOUT: float = 12.0  # Страницы и поисковики
    META_TIMEOUT: float = 8.0  # OpenGraph главной страницы бренда
    LOGO_TIMEOUT: float = 5.0  # Brandfetch
    TEXT_TIMEOUT: float = 20.0  # LLM-провайдеры
    IMAGE_TIMEOUT: float = 60.0  # Генераторы изображений
    DOWNLOAD_TIMEOUT: float = 15.0  # Скачивание исходника перед загрузкой в хранилище

    # Пороговые значения сбора доказательств (эмпирические, поэтому вынесены в настройки)
    MIN_PAGE_TEXT: int = 200  # Минимум символов, чтобы страница считалась полезной
    MAX_PAGE_CHARS: int = 4000  # Сколько текста брать с одной страницы
    MAX_PROXY_CHARS: int = 20000  # Ограничение ответа readability-прокси
    MAX_PAGES: int = 12  # Максимум загружаемых страниц
    THIN_EVIDENCE: int = 800  # Ниже этого порога идём в Википедию
    MIN_WIKI_TEXT: int = 400  # Минимальная длина статьи Википедии
    MAX_EVIDENCE: int = 20000  # Жёсткий предел итогового пакета
    MAX_PROMPT_EVIDENCE: int = 16000  # Сколько доказательств отдаём модели
    OFFICIAL_HOST_MAX_DISTANCE: int = 3  # Порог расстояния Левенштейна для «официального» домена
    READABILITY_PROXY: str = "https://r.jina.ai/"

    DEBUG_MODE: bool = False  # Режим отладки - показывать подробные логи в консоли
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    LOG_RETENTION_DAYS: int = Field(default=30, ge=1)  # Файлы старше удаляются при старте
    LOG_MAX_TOTAL_MB: int = Field(default=100, ge=1)  # Общий лимит каталога логов
    DISABLE_SSL_VERIFY: bool = False  # Отключить проверку SSL (только если есть проблемы с сертификатами)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra='ignore'  # Игнорировать лишние переменные в .env
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = (value or "INFO").strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("READABILITY_PROXY")
    @classmethod
    def _proxy_with_slash(cls, value: str) -> str:
        return value if value.endswith("/") else f"{value}/"

    @property
    def admin_ids(self) -> list[int]:
        """Список Telegram ID операторов."""
        result: list[int] = []
        for part in (self.ADMIN_IDS or "").split(","):
            part = part.strip()
            if part.isdigit() and int(part) > 0:
                result.append(int(part))
        return result

    @property
    def gemini_keys(self) -> list[str]:
        """Пул ключей Gemini: GEMINI_API_KEYS, иначе одиночный GEMINI_API_KEY."""
        raw = self.GEMINI_API_KEYS or self.GEMINI_API_KEY or ""
        return [key.strip() for key in raw.split(",") if key.strip()]


def split_order(raw: str | None) -> list[str]:
    """Разбирает строку порядка провайдеров вида 'groq, gemini'."""
    return [item.strip().lower() for item in (raw or "").split(",") if item.strip()]


settings = Settings()

"""
Inline-клавиатуры диалога добавления товара.
"""

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from catalog_bot.core.models import Table

TEXT_PROVIDER_CHOICES = (
    ("Pollinations", "pollinations"),
    ("Groq", "groq"),
    ("Gemini", "gemini"),
)

IMAGE_PROVIDER_CHOICES = (
    ("Cloudflare", "cloudflare"),
    ("Pollinations", "pollinations"),
    ("Hugging Face", "hf"),
    ("DeepAI", "deepai"),
    ("Local card", "local"),
)

# (поле черновика, подпись кнопки)
COMMON_FIELDS = (
    ("name", "Name"),
    ("plan", "Plan"),
    ("validity", "Validity"),
    ("price", "Price"),
    ("description", "Description"),
    ("tags", "Tags"),
)
PRODUCT_ONLY_FIELDS = (
    ("original_price", "Original price"),
    ("stock", "Stock"),
    ("category", "Category"),
    ("subcategory", "Subcategory"),
)


def editable_fields(table: str) -> tuple:
    """Поля, которые оператор может править для выбранной таблицы."""
    if table == Table.PRODUCTS:
        return COMMON_FIELDS + PRODUCT_ONLY_FIELDS
    return COMMON_FIELDS


def build_table_keyboard() -> InlineKeyboardMarkup:
    """Создаёт клавиатуру выбора таблицы назначения"""
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="Products", callback_data=f"set_table:{Table.PRODUCTS}")],
            [InlineKeyboardButton(text="Exclusive products", callback_data=f"set_table:{Table.EXCLUSIVE}")],
        ]
    )


def _provider_rows(prefix: str, choices) -> list[list[InlineKeyboardButton]]:
    rows = []
    for index in range(0, len(choices), 2):
        rows.append([
            InlineKeyboardButton(text=label, callback_data=f"{prefix}:{name}")
            for label, name in choices[index:index + 2]
        ])
    rows.append([
        InlineKeyboardButton(text="Auto (default order)", callback_data=f"{prefix}:auto"),
        InlineKeyboardButton(text="Cancel", callback_data=f"{prefix}:cancel"),
    ])
    return rows


def build_text_provider_keyboard() -> InlineKeyboardMarkup:
    """Создаёт клавиатуру выбора первого текстового провайдера"""
    return InlineKeyboardMarkup(inline_keyboard=_provider_rows("txtapi", TEXT_PROVIDER_CHOICES))


def build_image_provider_keyboard() -> InlineKeyboardMarkup:
    """Создаёт клавиатуру выбора первого генератора изображений"""
    return InlineKeyboardMarkup(inline_keyboard=_provider_rows("imgapi", IMAGE_PROVIDER_CHOICES))


def build_review_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text="✅ Save", callback_data="review:save")],
            [
                InlineKeyboardButton(text="✏️ Edit text", callback_data="review:edit_text"),
                InlineKeyboardButton(text="🖼 Change image", callback_data="review:change_image"),
            ],
            [InlineKeyboardButton(text="✖️ Cancel", callback_data="review:cancel")],
        ]
    )


def build_edit_field_keyboard(table: str) -> InlineKeyboardMarkup:
    fields = editable_fields(table)
    rows = []
    for index in range(0, len(fields), 2):
        rows.append([
            InlineKeyboardButton(text=label, callback_data=f"edit_field:{name}")
            for name, label in fields[index:index + 2]
        ])
    rows.append([InlineKeyboardButton(text="⬅️ Back to review", callback_data="back_review")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def build_after_task_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text="➕ Add another", callback_data="again_smartadd"),
                InlineKeyboardButton(text="🏁 Done", callback_data="again_done"),
            ]
        ]
    )

"""Tests for the operator dialogue: review formatting, keyboards, save flow and error reporting."""

from types import SimpleNamespace

import pytest
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.storage.base import StorageKey
from aiogram.fsm.storage.memory import MemoryStorage

from catalog_bot.api.storage import StorageUploadError
from catalog_bot.bot import error_handler as error_module
from catalog_bot.bot import handlers
from catalog_bot.bot.error_handler import ErrorHandler, on_dispatcher_error
from catalog_bot.bot.keyboards import (
    build_edit_field_keyboard,
    build_image_provider_keyboard,
    build_text_provider_keyboard,
)
from catalog_bot.core.models import ProductDraft, Table


class FakeMessage:
    def __init__(self, text=""):
        self.text = text
        self.caption = None
        self.reply_markup = None
        self.message_id = 10
        self.from_user = SimpleNamespace(id=1001, username="operator", full_name="Operator")
        self.chat = SimpleNamespace(id=1001)
        self.answers = []
        self.deleted = False

    async def answer(self, text, **kwargs):
        self.answers.append((text, kwargs))
        return self

    async def delete(self):
        self.deleted = True


class FakeCallback:
    def __init__(self, data, message):
        self.data = data
        self.message = message
        self.from_user = message.from_user
        self.alerts = []

    async def answer(self, text=None, **kwargs):
        self.alerts.append(text)


class FakeBot:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    async def send_message(self, **kwargs):
        if self.error is not None:
            raise self.error
        self.sent.append(kwargs)


class RecordingStorage:
    def __init__(self):
        self.hosted = []

    async def ensure_hosted(self, url, table, filename_hint="prod.jpg"):
        self.hosted.append((url, table, filename_hint))
        return "https://project.supabase.co/storage/v1/object/public/images/products/1-abc-x.jpg"


class RecordingRepository:
    def __init__(self, duplicate=None):
        self.duplicate = duplicate
        self.inserted = []
        self.updated = []

    async def find_duplicate(self, table, name, price):
        return self.duplicate

    async def insert(self, table, draft):
        self.inserted.append((table, draft))
        return 1

    async def update(self, table, product_id, draft):
        self.updated.append((table, product_id, draft))


def callback_data(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


def raised(error):
    try:
        raise error
    except Exception as exc:  # populates __traceback__
        return exc


@pytest.fixture()
def state():
    return FSMContext(storage=MemoryStorage(), key=StorageKey(bot_id=1, chat_id=1001, user_id=1001))


@pytest.fixture()
def netflix():
    return ProductDraft(
        name="Netflix Premium",
        plan="1 Month",
        price=199,
        description="Watch in 4K & HDR.",
        tags=["ott", "streaming"],
        features=["4K UHD", "4 screens"],
        category="OTT Accounts",
        image="https://netflix.com/og.jpg",
    )


def test_format_review_for_products_table(netflix):
    text = handlers.format_review(netflix, Table.PRODUCTS)

    assert "<b>Name:</b> Netflix Premium" in text
    assert "<b>Plan:</b> 1 Month" in text
    assert "<b>Price:</b> ₹199" in text
    assert "Watch in 4K &amp; HDR." in text
    assert "- 4 screens" in text
    assert "<b>Tags:</b> ott, streaming" in text
    assert "<b>Category:</b> OTT Accounts" in text
    assert '<a href="https://netflix.com/og.jpg">View image</a>' in text
    assert "Validity" not in text


def test_format_review_for_exclusive_table():
    text = handlers.format_review(ProductDraft(name="<Canva> Pro"), Table.EXCLUSIVE)

    assert "&lt;Canva&gt; Pro" in text
    assert "<b>Price:</b> -" in text
    assert "Category" not in text and "Stock" not in text
    assert text.endswith("<b>Image:</b> No image")


def test_apply_field_edit_coerces_values(netflix):
    handlers.apply_field_edit(netflix, "price", "₹1,299")
    handlers.apply_field_edit(netflix, "stock", "plenty")
    handlers.apply_field_edit(netflix, "tags", "OTT, ott; 4k")
    handlers.apply_field_edit(netflix, "category", "iptv")
    handlers.apply_field_edit(netflix, "plan", "   ")
    handlers.apply_field_edit(netflix, "name", "  Netflix Premium UHD ")

    assert netflix.price == 1299
    assert netflix.stock is None
    assert netflix.tags == ["OTT", "4k"]
    assert netflix.category == "IPTV"
    assert netflix.plan == "unknown"
    assert netflix.name == "Netflix Premium UHD"


def test_image_order_for_choice():
    assert handlers.image_order_for("local") == ["local"]
    assert handlers.image_order_for("hf") == ["hf", "cloudflare", "deepai", "pollinations"]
    assert handlers.image_order_for("cloudflare") == ["cloudflare", "hf", "deepai", "pollinations"]


def test_keyboards_callback_data():
    assert callback_data(build_text_provider_keyboard()) == [
        "txtapi:pollinations", "txtapi:groq", "txtapi:gemini", "txtapi:auto", "txtapi:cancel",
    ]
    assert callback_data(build_image_provider_keyboard())[-3:] == ["imgapi:local", "imgapi:auto", "imgapi:cancel"]

    exclusive = callback_data(build_edit_field_keyboard(Table.EXCLUSIVE))
    products = callback_data(build_edit_field_keyboard(Table.PRODUCTS))
    assert len(exclusive) == 7 and exclusive[-1] == "back_review"
    assert "edit_field:stock" in products and "edit_field:stock" not in exclusive


@pytest.mark.asyncio
async def test_save_inserts_rehosted_draft(monkeypatch, state, netflix):
    storage, repository = RecordingStorage(), RecordingRepository()
    monkeypatch.setattr(handlers, "storage", storage)
    monkeypatch.setattr(handlers, "repository", repository)
    await state.update_data(table=Table.PRODUCTS, review=netflix.as_dict())
    await state.set_state(handlers.CatalogState.reviewing)
    message = FakeMessage()

    await handlers.handle_review_save(FakeCallback("review:save", message), state)

    assert storage.hosted == [("https://netflix.com/og.jpg", "products", "Netflix Premium.jpg")]
    table, saved = repository.inserted[0]
    assert table == "products"
    assert saved.image.startswith("https://project.supabase.co/storage/v1/object/public/")
    assert message.answers[0][0] == "✅ Saved to products"
    assert await state.get_state() is None
    assert (await state.get_data())["review"] is None


@pytest.mark.asyncio
async def test_save_with_update_id_updates_existing_row(monkeypatch, state, netflix):
    repository = RecordingRepository(duplicate=99)
    monkeypatch.setattr(handlers, "storage", RecordingStorage())
    monkeypatch.setattr(handlers, "repository", repository)
    await state.update_data(table=Table.EXCLUSIVE, review=netflix.as_dict(), update_id=42)

    await handlers.handle_review_save(FakeCallback("review:save", FakeMessage()), state)

    assert repository.inserted == []
    assert repository.updated[0][:2] == ("exclusive_products", 42)


@pytest.mark.asyncio
async def test_save_refuses_duplicates(monkeypatch, state, netflix):
    repository = RecordingRepository(duplicate=7)
    monkeypatch.setattr(handlers, "storage", RecordingStorage())
    monkeypatch.setattr(handlers, "repository", repository)
    await state.update_data(table=Table.PRODUCTS, review=netflix.as_dict())
    message = FakeMessage()

    await handlers.handle_review_save(FakeCallback("review:save", message), state)

    assert repository.inserted == []
    assert "(id: 7)" in message.answers[0][0]
    assert message.deleted


@pytest.mark.asyncio
async def test_inline_edit_updates_draft_and_shows_review(state):
    await state.update_data(table=Table.PRODUCTS, review=ProductDraft(name="Canva Pro").as_dict(), edit_field="price")
    await state.set_state(handlers.CatalogState.editing_field)
    message = FakeMessage("₹249")

    await handlers.apply_inline_edit(message, state)

    data = await state.get_data()
    assert data["review"]["price"] == 249
    assert data["edit_field"] is None
    assert await state.get_state() == handlers.CatalogState.reviewing.state
    assert "<b>Price:</b> ₹249" in message.answers[-1][0]


@pytest.mark.asyncio
async def test_free_text_without_table_asks_for_table(state):
    message = FakeMessage("Netflix Premium 4K for one month at 199 rupees")

    await handlers.handle_free_text(message, state)

    text, kwargs = message.answers[0]
    assert text.startswith("Welcome!")
    assert callback_data(kwargs["reply_markup"]) == ["set_table:products", "set_table:exclusive_products"]


def test_classify_error():
    assert ErrorHandler.classify_error(StorageUploadError("x")) == "storage_error"
    assert ErrorHandler.classify_error(TimeoutError()) == "network_error"
    assert ErrorHandler.classify_error(TelegramBadRequest(method=None, message="Bad Request")) == "telegram_error"
    assert ErrorHandler.classify_error(KeyError("x")) == "unknown_error"


@pytest.mark.asyncio
async def test_handle_error_notifies_operator_and_admin():
    bot = FakeBot()
    handler = ErrorHandler(bot, "42")
    message = FakeMessage("Netflix Premium")

    await handler.handle_error(raised(StorageUploadError("bucket <images> missing")), message, context="review:save")

    assert message.answers[0][0] == ErrorHandler.USER_MESSAGES["storage_error"]
    assert [sent["chat_id"] for sent in bot.sent] == [42, 42]
    assert "bucket &lt;images&gt; missing" in bot.sent[0]["text"]
    assert "review:save" in bot.sent[0]["text"]
    assert bot.sent[1]["text"].startswith("<b>Traceback:</b>")


@pytest.mark.asyncio
async def test_handle_error_without_admin_chat_and_with_broken_admin_chat():
    bot = FakeBot()
    message = FakeMessage()
    await ErrorHandler(bot, "not-a-number").handle_error(raised(ValueError("x")), message)
    assert bot.sent == []
    assert message.answers[0][0] == ErrorHandler.USER_MESSAGES["unknown_error"]

    failing = FakeBot(error=TelegramBadRequest(method=None, message="Bad Request: chat not found"))
    await ErrorHandler(failing, "42").handle_error(raised(ValueError("x")), FakeMessage())


@pytest.mark.asyncio
async def test_dispatcher_error_hook_delegates(monkeypatch):
    bot = FakeBot()
    monkeypatch.setattr(error_module, "error_handler", ErrorHandler(bot, "42"))
    message = FakeMessage("Spotify")
    event = SimpleNamespace(
        update=SimpleNamespace(message=message, callback_query=None),
        exception=raised(TimeoutError("upstream")),
    )

    assert await on_dispatcher_error(event) is True
    assert message.answers[0][0] == ErrorHandler.USER_MESSAGES["network_error"]
    assert len(bot.sent) == 2

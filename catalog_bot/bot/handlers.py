import asyncio
import html
import logging
import re
from typing import Any, Optional

from aiogram import Bot, F, Router
from aiogram.enums import ChatAction
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command, CommandObject, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message

from catalog_bot.api.images.brand import resolve_brand_domain
from catalog_bot.api.storage import (
    ProductRepository,
    RepositoryError,
    SourceDownloadError,
    StorageError,
    SupabaseStorage,
)
from catalog_bot.api.web_fetcher import WebFetcher
from catalog_bot.core.config import settings
from catalog_bot.core.models import UNKNOWN, ProductDraft, Table
from catalog_bot.services.enrichment import EnrichmentService, normalize_category, page_evidence
from catalog_bot.services.image_resolver import DEFAULT_IMAGE_ORDER, LOCAL_PROVIDER, ImageResolver
from catalog_bot.services.web_search import WebSearchAggregator
from catalog_bot.utils.html_meta import extract_meta_tags
from catalog_bot.utils.text import is_unknown, parse_price, split_list, uniq_merge

from .keyboards import (
    build_after_task_keyboard,
    build_edit_field_keyboard,
    build_image_provider_keyboard,
    build_review_keyboard,
    build_table_keyboard,
    build_text_provider_keyboard,
    editable_fields,
)

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"https?://[^\s]+", re.IGNORECASE)
# Свободный текст без /smartadd считается товаром, если он многострочный или длиннее порога
FREE_TEXT_MIN_CHARS = 40
CAPTION_LIMIT = 1024
LIST_LIMIT = 12

# Кнопка выбора -> порядок текстовых провайдеров (остальные идут как fallback)
TEXT_ORDERS = {
    "pollinations": ["pollinations", "groq", "gemini"],
    "groq": ["groq", "pollinations", "gemini"],
    "gemini": ["gemini", "groq", "pollinations"],
}
INT_FIELDS = ("price", "original_price", "stock")


async def _safe_clear_markup(message: Optional[Message]) -> None:
    """Безопасно убираем inline-клавиатуру, игнорируя ошибку 'message is not modified'."""
    if not message or message.reply_markup is None:
        return
    try:
        await message.edit_reply_markup()
    except TelegramBadRequest as e:
        if "message is not modified" in str(e):
            return
        raise


async def _safe_delete(message: Optional[Message]) -> None:
    if not message:
        return
    try:
        await message.delete()
    except TelegramBadRequest as e:
        logger.debug("Message %s was not deleted: %s", message.message_id, e)


# Инициализация роутера: доступ только у операторов из ADMIN_IDS
router = Router()
router.message.filter(F.from_user.id.in_(settings.admin_ids))
router.callback_query.filter(F.from_user.id.in_(settings.admin_ids))

# Сервисы конвейера
web_fetcher = WebFetcher()
web_search = WebSearchAggregator(fetcher=web_fetcher)
enrichment_service = EnrichmentService(search=web_search)
storage = SupabaseStorage()
image_resolver = ImageResolver(storage=storage)
repository = ProductRepository()


class CatalogState(StatesGroup):
    """Состояния диалога добавления товара"""
    waiting_product_text = State()
    choosing_text_provider = State()
    choosing_image_provider = State()
    reviewing = State()
    editing_field = State()
    waiting_image = State()


def image_order_for(choice: str) -> list[str]:
    """Выбранный генератор первым, остальные из порядка по умолчанию после него."""
    if choice == LOCAL_PROVIDER:
        return [LOCAL_PROVIDER]
    return [choice] + [name for name in DEFAULT_IMAGE_ORDER if name != choice]


def table_title(table: str) -> str:
    return "Products" if table == Table.PRODUCTS else "Exclusive products"


def format_review(draft: ProductDraft, table: str) -> str:
    """Форматирует карточку товара для проверки перед сохранением (HTML)."""
    esc = html.escape
    lines = ["<b>Review before save</b>", f"<b>Name:</b> {esc(draft.name)}"]
    if not is_unknown(draft.plan):
        lines.append(f"<b>Plan:</b> {esc(draft.plan)}")
    if not is_unknown(draft.validity):
        lines.append(f"<b>Validity:</b> {esc(draft.validity)}")
    lines.append(f"<b>Price:</b> {'₹' + str(draft.price) if draft.price is not None else '-'}")
    lines.append(f"<b>Description:</b> {esc(draft.description or '-')}")
    if draft.features:
        lines.append("\n<b>Key Features:</b>")
        lines.extend(f"- {esc(feature)}" for feature in draft.features)
    lines.append(f"\n<b>Tags:</b> {esc(', '.join(draft.tags) or '-')}")
    if table == Table.PRODUCTS:
        lines.append(f"<b>MRP:</b> {draft.original_price if draft.original_price is not None else '-'}")
        lines.append(f"<b>Stock:</b> {draft.stock if draft.stock is not None else '-'}")
        lines.append(f"<b>Category:</b> {esc(draft.category)}")
        lines.append(f"<b>Subcategory:</b> {esc(draft.subcategory if not is_unknown(draft.subcategory) else '-')}")
    if draft.image:
        lines.append(f'\n<b>Image:</b> <a href="{esc(draft.image, quote=True)}">View image</a>')
    else:
        lines.append("\n<b>Image:</b> No image")
    return "\n".join(lines)


def apply_field_edit(draft: ProductDraft, field: str, raw: str) -> ProductDraft:
    """Применяет ввод оператора к полю черновика с приведением типа."""
    value: Any = raw.strip()
    if field in INT_FIELDS:
        value = parse_price(value)
    elif field == "tags":
        value = uniq_merge(split_list(value))
    elif field == "category":
        value = normalize_category(value)
    elif field in ("plan", "validity", "subcategory") and not value:
        value = UNKNOWN
    setattr(draft, field, value)
    return draft


async def send_chat_action_loop(bot: Bot, chat_id: int, stop_event: asyncio.Event, action: ChatAction) -> None:
    """
    Периодически отправляет индикатор действия, пока обрабатывается запрос.

    Args:
        bot: Экземпляр aiogram Bot
        chat_id: Чат оператора
        stop_event: Event для остановки отправки индикатора
        action: Тип индикатора (печатает / загружает фото)
    """
    while not stop_event.is_set():
        try:
            await bot.send_chat_action(chat_id=chat_id, action=action)
        except TelegramAPIError as e:
            logger.debug("Chat action failed: %s", e)
        try:
            # индикатор живёт около 5 секунд
            await asyncio.wait_for(stop_event.wait(), timeout=4)
        except asyncio.TimeoutError:
            continue


async def _get_draft(state: FSMContext) -> Optional[ProductDraft]:
    data = await state.get_data()
    review = data.get("review")
    return ProductDraft.from_dict(review) if review else None


async def _save_draft(state: FSMContext, draft: ProductDraft) -> None:
    await state.update_data(review=draft.as_dict())


async def present_review(message: Message, state: FSMContext) -> None:
    """Показывает карточку товара с клавиатурой проверки."""
    data = await state.get_data()
    draft = await _get_draft(state)
    if draft is None:
        await message.answer("Nothing to review. Send /smartadd to start.")
        return
    table = data.get("table", Table.PRODUCTS)
    text = format_review(draft, table)
    await state.set_state(CatalogState.reviewing)

    if draft.image and len(text) <= CAPTION_LIMIT:
        try:
            await message.answer_photo(draft.image, caption=text, parse_mode="HTML", reply_markup=build_review_keyboard())
            return
        except TelegramBadRequest as e:
            logger.warning("Failed to send review photo %s: %s", draft.image, e)
    await message.answer(text, parse_mode="HTML", reply_markup=build_review_keyboard())


async def _ask_table(message: Message, state: FSMContext, greeting: str) -> None:
    await state.clear()
    await message.answer(greeting, reply_markup=build_table_keyboard())


@router.message(CommandStart())
async def command_start_handler(message: Message, state: FSMContext) -> None:
    """
    Обработчик команды /start.
    Сбрасывает сессию (включая выбранный текстовый провайдер) и предлагает выбрать таблицу.
    """
    await _ask_table(message, state, f"Welcome, {html.escape(message.from_user.full_name)}! Choose a table to work with:")


@router.message(Command("table"))
async def command_table_handler(message: Message, state: FSMContext) -> None:
    await _ask_table(message, state, "Choose a table to work with:")


@router.message(Command("cancel"))
async def command_cancel_handler(message: Message, state: FSMContext) -> None:
    data = await state.get_data()
    await state.set_state(None)
    await state.update_data(review=None, update_id=None, pending=None, edit_field=None)
    await message.answer("Cancelled.", reply_markup=build_after_task_keyboard() if data.get("table") else None)


@router.callback_query(F.data.startswith("set_table:"))
async def handle_table_choice(callback: CallbackQuery, state: FSMContext) -> None:
    table = callback.data.split(":", 1)[1]
    if table not in Table.ALL:
        await callback.answer("Unknown table", show_alert=True)
        return
    await state.clear()
    await state.update_data(table=table)
    await callback.answer(f"Table set to {table}")
    await _safe_clear_markup(callback.message)
    await callback.message.answer(
        f"✅ Table set to <b>{table}</b>.\n\n"
        "Commands:\n"
        "• /smartadd - add a product from free text\n"
        "• /list - latest products\n"
        "• /update &lt;id&gt; - edit a product\n"
        "• /toggle &lt;id&gt; - activate / deactivate",
        parse_mode="HTML",
    )


async def _require_table(message: Message, state: FSMContext) -> Optional[str]:
    table = (await state.get_data()).get("table")
    if not table:
        await message.answer("First choose a table:", reply_markup=build_table_keyboard())
    return table


@router.message(Command("smartadd"))
async def command_smartadd_handler(message: Message, state: FSMContext) -> None:
    if not await _require_table(message, state):
        return
    await state.set_state(CatalogState.waiting_product_text)
    await message.answer(
        "Send the product as free text: name, plan, validity, price, a link to the site if you have one."
    )


@router.message(Command("list"))
async def command_list_handler(message: Message, state: FSMContext) -> None:
    table = await _require_table(message, state)
    if not table:
        return
    try:
        rows = await repository.list_recent(table, LIST_LIMIT)
    except (RepositoryError, StorageError) as e:
        await message.answer(f"❌ Could not load products: {html.escape(str(e))}", parse_mode="HTML")
        return
    if not rows:
        await message.answer(f"No products in {table} yet.")
        return
    lines = [f"<b>Latest in {table}:</b>"]
    for row in rows:
        status = "🟢" if row.get("is_active") else "⚪️"
        price = row.get("price")
        lines.append(
            f"{status} <code>{row.get('id')}</code> {html.escape(str(row.get('name') or ''))}"
            f" - {'₹' + str(price) if price is not None else '-'}"
        )
    await message.answer("\n".join(lines), parse_mode="HTML")


def _parse_id(command: CommandObject) -> Optional[int]:
    raw = (command.args or "").strip()
    return int(raw) if raw.isdigit() else None


@router.message(Command("toggle"))
async def command_toggle_handler(message: Message, state: FSMContext, command: CommandObject) -> None:
    table = await _require_table(message, state)
    if not table:
        return
    product_id = _parse_id(command)
    if product_id is None:
        await message.answer("Usage: /toggle <id>")
        return
    try:
        new_state = await repository.toggle_active(table, product_id)
    except (RepositoryError, StorageError) as e:
        await message.answer(f"❌ Toggle failed: {html.escape(str(e))}", parse_mode="HTML")
        return
    if new_state is None:
        await message.answer(f"Product {product_id} not found in {table}.")
        return
    await message.answer(f"Product {product_id} is now {'active 🟢' if new_state else 'inactive ⚪️'}.")


@router.message(Command("update"))
async def command_update_handler(message: Message, state: FSMContext, command: CommandObject) -> None:
    table = await _require_table(message, state)
    if not table:
        return
    product_id = _parse_id(command)
    if product_id is None:
        await message.answer("Usage: /update <id>")
        return
    try:
        draft = await repository.get(table, product_id)
    except (RepositoryError, StorageError) as e:
        await message.answer(f"❌ Could not load product: {html.escape(str(e))}", parse_mode="HTML")
        return
    if draft is None:
        await message.answer(f"Product {product_id} not found in {table}.")
        return
    await state.update_data(review=draft.as_dict(), update_id=product_id)
    await present_review(message, state)


async def _discover_site(text: str) -> Optional[str]:
    """Сайт товара: ссылка из текста -> таблица брендов / <slug>.com -> домен из поиска."""
    url_match = URL_PATTERN.search(text)
    if url_match:
        return url_match.group(0)
    guessed_name = text.split("\n")[0].strip()
    domain = resolve_brand_domain(guessed_name)
    if not domain:
        domain = await web_search.pick_official_domain(guessed_name)
    return f"https://{domain}" if domain else None


async def start_smart_add(message: Message, state: FSMContext) -> None:
    """Первая половина /smartadd: сайт товара, затем выбор модели или сразу обогащение."""
    text = message.text or ""
    await message.answer("🤖 Checking for product URL & fetching site content...")

    website_content = ""
    og_image: Optional[str] = None
    site = await _discover_site(text)
    if site:
        await message.answer(f"🌐 Reading {html.escape(site)} ...", parse_mode="HTML")
        page = await web_fetcher.fetch_page(site)
        website_content = page_evidence(page["html"], page["text"])
        if page["html"]:
            og_image = extract_meta_tags(page["html"]).get("og_image")
    else:
        await message.answer("🔎 Couldn't auto-detect the official site. I'll rely on web search evidence.")

    pending = {"text": text, "website_content": website_content, "og_image": og_image}
    data = await state.get_data()
    if not data.get("text_order"):
        await state.update_data(pending=pending)
        await state.set_state(CatalogState.choosing_text_provider)
        await message.answer(
            "Choose which text model fills the product details (retries and fallbacks are automatic):",
            reply_markup=build_text_provider_keyboard(),
        )
        return
    await run_enrichment(message, state, pending)


async def run_enrichment(message: Message, state: FSMContext, pending: dict) -> None:
    """Вторая половина /smartadd: LLM, картинка бренда, карточка на проверку."""
    data = await state.get_data()
    table = data.get("table", Table.PRODUCTS)
    order = data.get("text_order") or None
    if order == ["auto"]:
        order = None

    stop_event = asyncio.Event()
    typing_task = asyncio.create_task(
        send_chat_action_loop(message.bot, message.chat.id, stop_event, ChatAction.TYPING)
    )
    try:
        draft = await enrichment_service.enrich_with_ai(pending["text"], pending.get("website_content", ""), order)
    finally:
        stop_event.set()
        await typing_task

    await message.answer(
        "📝 Parsed:\n"
        f"• Name: {draft.name}\n"
        f"• Plan: {draft.plan}\n"
        f"• Validity: {draft.validity}\n"
        f"• Price: {draft.price if draft.price is not None else '-'}\n"
        f"• Category: {draft.category}\n"
        "(Choosing an image next…)"
    )

    og_image = pending.get("og_image")
    if og_image:
        try:
            draft.image = await storage.rehost(og_image, f"{draft.name}.jpg", table)
        except SourceDownloadError as e:
            logger.warning("[img] OG image from the product page failed: %s", e)
    if not draft.image:
        draft.image = await image_resolver.try_brand_images(draft, table)

    await state.update_data(review=draft.as_dict(), pending=None, update_id=None)
    if draft.image:
        await present_review(message, state)
        return

    await state.set_state(CatalogState.choosing_image_provider)
    await message.answer(
        "Choose which image API to use first (fallbacks are tried automatically if it fails):",
        reply_markup=build_image_provider_keyboard(),
    )


@router.callback_query(F.data.startswith("txtapi:"))
async def handle_text_provider_choice(callback: CallbackQuery, state: FSMContext) -> None:
    choice = callback.data.split(":", 1)[1]
    await callback.answer()
    await _safe_delete(callback.message)
    data = await state.get_data()

    if choice == "cancel":
        await state.set_state(None)
        await state.update_data(pending=None)
        await callback.message.answer("Cancelled. Send /smartadd to start again.")
        return

    order = TEXT_ORDERS.get(choice, ["auto"])
    await state.update_data(text_order=order)
    logger.info("[text] operator %s chose text order %s", callback.from_user.id, order)

    pending = data.get("pending")
    if not pending:
        await callback.message.answer("No pending product to resume. Send /smartadd again.")
        return
    await run_enrichment(callback.message, state, pending)


@router.callback_query(F.data.startswith("imgapi:"))
async def handle_image_provider_choice(callback: CallbackQuery, state: FSMContext) -> None:
    choice = callback.data.split(":", 1)[1]
    await callback.answer()
    await _safe_delete(callback.message)
    draft = await _get_draft(state)
    if draft is None:
        await callback.message.answer("Nothing to generate an image for. Send /smartadd to start.")
        return

    if choice == "cancel":
        await callback.message.answer('Image generation cancelled. Tap "Change image" later to provide one.')
        await present_review(callback.message, state)
        return

    table = (await state.get_data()).get("table", Table.PRODUCTS)
    order = None if choice == "auto" else image_order_for(choice)
    status_message = await callback.message.answer("🎨 Generating product image...")

    async def report(text: str) -> None:
        try:
            await status_message.edit_text(f"🎨 {text}")
        except TelegramBadRequest as e:
            logger.debug("Status update skipped: %s", e)

    stop_event = asyncio.Event()
    action_task = asyncio.create_task(
        send_chat_action_loop(callback.bot, callback.message.chat.id, stop_event, ChatAction.UPLOAD_PHOTO)
    )
    try:
        draft.image = await image_resolver.generate_background_with_order(draft, table, order, status=report)
    finally:
        stop_event.set()
        await action_task

    await _save_draft(state, draft)
    await _safe_delete(status_message)
    await present_review(callback.message, state)


@router.callback_query(CatalogState.reviewing, F.data == "review:edit_text")
async def handle_edit_text(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.answer()
    table = (await state.get_data()).get("table", Table.PRODUCTS)
    await _safe_delete(callback.message)
    await callback.message.answer(
        "Which text field would you like to edit?",
        reply_markup=build_edit_field_keyboard(table),
    )


@router.callback_query(F.data.startswith("edit_field:"))
async def handle_edit_field_choice(callback: CallbackQuery, state: FSMContext) -> None:
    field = callback.data.split(":", 1)[1]
    data = await state.get_data()
    allowed = dict(editable_fields(data.get("table", Table.PRODUCTS)))
    if not data.get("review") or field not in allowed:
        await callback.answer("Nothing to edit", show_alert=True)
        return
    await callback.answer()
    await state.update_data(edit_field=field)
    await state.set_state(CatalogState.editing_field)
    hint = " (separate with commas)" if field == "tags" else ""
    await callback.message.edit_text(f"Send the new value for <b>{allowed[field]}</b>{hint}:", parse_mode="HTML")


@router.message(CatalogState.editing_field, F.text)
async def apply_inline_edit(message: Message, state: FSMContext) -> None:
    data = await state.get_data()
    draft = await _get_draft(state)
    field = data.get("edit_field")
    if draft is None or not field:
        await state.set_state(None)
        return
    apply_field_edit(draft, field, message.text)
    await state.update_data(review=draft.as_dict(), edit_field=None)
    await present_review(message, state)


@router.callback_query(F.data == "back_review")
async def handle_back_review(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.answer()
    await _safe_delete(callback.message)
    await state.update_data(edit_field=None)
    await present_review(callback.message, state)


@router.callback_query(CatalogState.reviewing, F.data == "review:change_image")
async def handle_change_image(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.answer()
    await _safe_clear_markup(callback.message)
    await state.set_state(CatalogState.waiting_image)
    await callback.message.answer("Send an image URL or upload a photo.")


async def _replace_image(message: Message, state: FSMContext, source: Any, hint: str) -> None:
    data = await state.get_data()
    draft = await _get_draft(state)
    if draft is None:
        await state.set_state(None)
        return
    try:
        draft.image = await storage.rehost(source, hint, data.get("table", Table.PRODUCTS))
    except SourceDownloadError:
        await message.answer("❌ That URL didn't work. Please try another one, or upload a photo.")
        return
    await _save_draft(state, draft)
    await present_review(message, state)


@router.message(CatalogState.waiting_image, F.text.regexp(r"^https?://"))
async def handle_image_url(message: Message, state: FSMContext) -> None:
    draft = await _get_draft(state)
    await message.answer("🔗 Got it. Rehosting your image URL...")
    await _replace_image(message, state, message.text.strip(), f"{draft.name if draft else 'product'}.jpg")


@router.message(CatalogState.waiting_image, F.photo | F.document)
async def handle_image_upload(message: Message, state: FSMContext) -> None:
    if message.photo:
        file_id, hint = message.photo[-1].file_id, "upload.jpg"
    elif message.document and (message.document.mime_type or "").startswith("image/"):
        file_id, hint = message.document.file_id, message.document.file_name or "upload.jpg"
    else:
        await message.answer("Please send an image file.")
        return
    await message.answer("📥 Uploading your image...")
    buffer = await message.bot.download(file_id)
    await _replace_image(message, state, buffer.read(), hint)


@router.message(CatalogState.waiting_image)
async def handle_image_wrong_input(message: Message) -> None:
    await message.answer("Send an image URL starting with http(s):// or upload a photo.")


@router.callback_query(F.data == "review:cancel")
async def handle_review_cancel(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.answer()
    await _safe_delete(callback.message)
    await state.set_state(None)
    await state.update_data(review=None, update_id=None)
    await callback.message.answer("Cancelled.", reply_markup=build_after_task_keyboard())


@router.callback_query(CatalogState.reviewing, F.data == "review:save")
async def handle_review_save(callback: CallbackQuery, state: FSMContext) -> None:
    data = await state.get_data()
    draft = await _get_draft(state)
    if draft is None:
        await callback.answer("Nothing to save")
        return
    await callback.answer("Saving…")
    table = data.get("table", Table.PRODUCTS)
    update_id = data.get("update_id")

    try:
        # ссылки, вставленные при редактировании, тоже должны жить в нашем хранилище
        draft.image = await storage.ensure_hosted(draft.image, table, f"{draft.name}.jpg")
        if update_id:
            await repository.update(table, update_id, draft)
        else:
            duplicate = await repository.find_duplicate(table, draft.name, draft.price)
            if duplicate is not None:
                await _safe_delete(callback.message)
                await callback.message.answer(
                    f"⚠️ Product with same name & price exists (id: {duplicate}). Cancelled save.",
                    reply_markup=build_after_task_keyboard(),
                )
                await state.set_state(None)
                await state.update_data(review=None)
                return
            await repository.insert(table, draft)
    except (RepositoryError, SourceDownloadError) as e:
        logger.error("Save to %s failed: %s", table, e)
        await callback.message.answer(f"❌ Save failed: {html.escape(str(e))}", parse_mode="HTML")
        return

    logger.info("Saved %r to %s (update_id=%s)", draft.name, table, update_id)
    await _safe_delete(callback.message)
    await state.set_state(None)
    await state.update_data(review=None, update_id=None)
    await callback.message.answer(f"✅ Saved to {table}")
    await callback.message.answer("What next?", reply_markup=build_after_task_keyboard())


@router.callback_query(F.data == "again_smartadd")
async def handle_again_smartadd(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.answer()
    await _safe_clear_markup(callback.message)
    if not (await state.get_data()).get("table"):
        await callback.message.answer("First choose a table:", reply_markup=build_table_keyboard())
        return
    await state.set_state(CatalogState.waiting_product_text)
    await callback.message.answer("Send the next product as free text.")


@router.callback_query(F.data == "again_done")
async def handle_again_done(callback: CallbackQuery, state: FSMContext) -> None:
    await callback.answer()
    await _safe_clear_markup(callback.message)
    await state.clear()
    await callback.message.answer("Done! Fresh start. Choose a table:", reply_markup=build_table_keyboard())


@router.message(CatalogState.waiting_product_text, F.text)
async def handle_product_text(message: Message, state: FSMContext) -> None:
    if message.text.startswith("/"):
        await message.answer("Send the product text, or /cancel.")
        return
    await start_smart_add(message, state)


@router.message(CatalogState.choosing_text_provider)
@router.message(CatalogState.choosing_image_provider)
async def handle_waiting_for_choice(message: Message) -> None:
    await message.answer("Please choose an option with the buttons above.")


@router.message(F.text)
async def handle_free_text(message: Message, state: FSMContext) -> None:
    """Текст вне сценария: длинное описание запускает /smartadd, иначе подсказка."""
    text = message.text or ""
    table = (await state.get_data()).get("table")
    if not table:
        await message.answer("Welcome! To get started, please choose a table.", reply_markup=build_table_keyboard())
        return
    if not text.startswith("/") and ("\n" in text or len(text) > FREE_TEXT_MIN_CHARS):
        await start_smart_add(message, state)
        return
    await message.answer(f"Working with <b>{table_title(table)}</b>. Use /smartadd, /list, /update or /toggle.", parse_mode="HTML")

"""
Локальная отрисовка карточки товара (без внешних сервисов).

Используется как последний уровень при подборе изображения: градиентный фон
с мягкими пятнами света и название товара крупным шрифтом по центру.
"""

from __future__ import annotations

import io
import textwrap
from typing import List, Tuple

from PIL import Image, ImageChops, ImageDraw, ImageFont, ImageOps

from catalog_bot.core.models import ProductDraft
from catalog_bot.utils.text import is_unknown, short_brand_name

CARD_SIZE = 1024
GRADIENT_STOPS = ("#0f172a", "#1e293b", "#334155")
# (центр x, центр y, радиус, цвет) в долях стороны
BLOBS = (
    (0.21, 0.21, 0.27, "#38bdf8"),
    (0.86, 0.74, 0.35, "#a78bfa"),
)
BLOB_OPACITY = 0.35
SHADE_OPACITY = 0.35
TITLE_COLOR = "#ffffff"
SUBTITLE_COLOR = "#e5e7eb"
FONT_CANDIDATES = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf", "LiberationSans-Bold.ttf")

RGB = Tuple[int, int, int]


def _hex_to_rgb(value: str) -> RGB:
    value = value.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def _load_font(size: int) -> ImageFont.ImageFont:
    for name in FONT_CANDIDATES:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def gradient_background(size: int = CARD_SIZE) -> Image.Image:
    """Диагональный градиент по трём опорным цветам плюс два размытых пятна."""
    ramp = Image.linear_gradient("L")
    diagonal = ImageChops.add(ramp.rotate(90), ramp, scale=2.0).resize((size, size))
    start, middle, end = GRADIENT_STOPS
    image = ImageOps.colorize(diagonal, black=start, white=end, mid=middle)

    glow = ImageOps.invert(Image.radial_gradient("L"))
    for cx, cy, radius, color in BLOBS:
        diameter = int(size * radius * 2)
        mask = glow.resize((diameter, diameter)).point(lambda v: int(v * BLOB_OPACITY))
        layer = Image.new("RGB", (diameter, diameter), _hex_to_rgb(color))
        image.paste(layer, (int(size * cx) - diameter // 2, int(size * cy) - diameter // 2), mask)
    return image


def _wrap(text: str, width: int, max_lines: int) -> List[str]:
    lines = textwrap.wrap(text.strip(), width=width) or [text.strip()]
    return lines[:max_lines]


def _subtitle_lines(draft: ProductDraft) -> List[str]:
    lines: List[str] = []
    if not is_unknown(draft.plan):
        lines.append(str(draft.plan))
    details: List[str] = []
    if not is_unknown(draft.validity):
        details.append(str(draft.validity))
    if draft.price is not None:
        details.append(f"₹{draft.price}")
    if details:
        lines.append(" · ".join(details))
    return lines


class CardRenderer:
    """Рисует карточку товара и накладывает заголовок на готовый фон."""

    def __init__(self, size: int = CARD_SIZE):
        self.size = size

    def render_card(self, draft: ProductDraft) -> bytes:
        """PNG-карточка: градиент, пятна, название, тариф, срок и цена."""
        background = gradient_background(self.size)
        return self._draw_text(background, draft)

    def compose_overlay(self, background: bytes, draft: ProductDraft) -> bytes:
        """Накладывает название товара поверх сгенерированного фона."""
        with Image.open(io.BytesIO(background)) as source:
            image = ImageOps.fit(source.convert("RGB"), (self.size, self.size))
        return self._draw_text(image, draft)

    def _draw_text(self, image: Image.Image, draft: ProductDraft) -> bytes:
        shade = Image.new("RGB", image.size, "#000000")
        image = Image.blend(image, shade, SHADE_OPACITY)
        draw = ImageDraw.Draw(image)

        title_lines = _wrap(short_brand_name(draft.name), width=18, max_lines=2)
        title_font = _load_font(self._scaled(100 if len(title_lines) > 1 else 120))
        subtitle_font = _load_font(self._scaled(56))
        subtitle_lines = [line[:40] for line in _subtitle_lines(draft)]

        blocks = [(line, title_font, TITLE_COLOR) for line in title_lines]
        blocks += [(line, subtitle_font, SUBTITLE_COLOR) for line in subtitle_lines]

        gap = self._scaled(24)
        heights = []
        for text, font, _ in blocks:
            bbox = draw.textbbox((0, 0), text, font=font)
            heights.append(bbox[3] - bbox[1])
        total = sum(heights) + gap * (len(blocks) - 1)

        current_y = (image.height - total) / 2
        for (text, font, color), height in zip(blocks, heights):
            bbox = draw.textbbox((0, 0), text, font=font)
            text_x = (image.width - (bbox[2] - bbox[0])) / 2 - bbox[0]
            draw.text((text_x, current_y - bbox[1]), text, font=font, fill=color)
            current_y += height + gap

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def _scaled(self, value: int) -> int:
        return max(8, int(value * self.size / CARD_SIZE))

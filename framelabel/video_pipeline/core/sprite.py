import io
import math
from typing import Sequence, Union

from loguru import logger
from PIL import Image, UnidentifiedImageError

from framelabel.exceptions import CompositionException, ValidationException
from .models import SpriteLayout, round_half_up

SPRITE_WIDTH = 96
MAX_PER_ROW = 20
BORDER_SIZE = 1

ImageSource = Union[bytes, Image.Image]


def _even(value: int) -> int:
    # drop the low bit so tile borders stay pixel aligned
    return (value >> 1) << 1


def compute_layout(
    source_width: int,
    source_height: int,
    target_tile_width: int = SPRITE_WIDTH,
    max_per_row: int = MAX_PER_ROW,
) -> SpriteLayout:
    """Thumbnail size (even width/height) and tiles per row for a contact sheet."""
    if source_width <= 0 or source_height <= 0 or target_tile_width <= 0:
        raise ValidationException(
            f"invalid sprite dimensions: {source_width}x{source_height} -> {target_tile_width}"
        )
    downscale = source_width / target_tile_width
    return SpriteLayout(
        tile_width=_even(round_half_up(source_width / downscale)),
        tile_height=_even(round_half_up(source_height / downscale)),
        max_per_row=max_per_row,
    )


def grid_size(total_frames: int, max_per_row: int):
    """(cols, rows) of a sheet holding ``total_frames`` tiles."""
    cols = min(total_frames, max_per_row)
    rows = math.ceil(total_frames / max_per_row)
    return cols, rows


def _open(source: ImageSource, index: int) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    try:
        img = Image.open(io.BytesIO(source))
        img.load()
        return img
    except (UnidentifiedImageError, OSError, TypeError) as e:
        raise CompositionException(f"cannot decode sprite frame #{index}: {e}") from e


def compose_sprite_sheet(
    images: Sequence[ImageSource],
    layout: SpriteLayout,
    border_px: int = BORDER_SIZE,
    quality: int = 80,
) -> bytes:
    """
    Composite frame images row-major into a single JPEG contact sheet.

    Each frame is scaled to ``layout.tile_width`` wide, ``border_px`` is cropped
    off every edge and the remainder is pasted inside its cell, leaving the
    black background as the tile border.
    """
    if not images:
        raise ValidationException("no frames to compose")

    tile_w = layout.tile_width
    tile_h = layout.tile_height
    cols, rows = grid_size(len(images), layout.max_per_row)
    logger.info(f"background: {cols}x{rows} [{cols * tile_w}x{rows * tile_h}] ({len(images)})")

    canvas = Image.new("RGB", (cols * tile_w, rows * tile_h), (0, 0, 0))
    for i, source in enumerate(images):
        img = _open(source, i).convert("RGB")
        factor = tile_w / img.width
        scaled = img.resize((tile_w, max(1, round_half_up(img.height * factor))), Image.Resampling.BILINEAR)

        right = scaled.width - border_px
        bottom = scaled.height - border_px
        if right <= border_px or bottom <= border_px:
            raise CompositionException(f"frame #{i} too small for a {border_px}px border")
        cropped = scaled.crop((border_px, border_px, right, bottom))

        col = i % layout.max_per_row
        row = i // layout.max_per_row
        canvas.paste(cropped, (col * tile_w + border_px, row * tile_h + border_px))

    buffer = io.BytesIO()
    canvas.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()

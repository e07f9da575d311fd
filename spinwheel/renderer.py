"""Paints the wheel onto a Pillow surface.

The unrotated wheel (sectors, item images, placeholders) is drawn once into a
base layer and reused until the item list or the set of loaded images
changes; each tick only rotates that layer and draws the pointer on top.
Sector sizes are equal for every item, whatever its weight.
"""
import colorsys
import logging
import math
import threading

from PIL import Image, ImageChops, ImageDraw, ImageFont

from .planner import DEFAULT_POINTER_OFFSET

logger = logging.getLogger(__name__)

FILL_COLORS = ('#22c55e', '#16a34a')
POINTER_COLOR = '#ef4444'
POINTER_OUTLINE = '#facc15'

# Relative to the wheel radius: 40px slots 130px out on a 400px wheel
IMAGE_SLOT_RATIO = 0.2
IMAGE_DISTANCE_RATIO = 0.65


def _load_font(size):
    try:
        return ImageFont.truetype('DejaVuSans-Bold.ttf', size)
    except OSError:
        return ImageFont.load_default(size=size)


def placeholder_color(index, count):
    """Deterministic disc colour for sector ``index``: hsl(index*360/count, 70%, 60%)"""
    r, g, b = colorsys.hls_to_rgb(index / count, 0.6, 0.7)
    return int(round(r * 255)), int(round(g * 255)), int(round(b * 255))


class WheelRenderer:
    """Draws items at a given orientation onto ``surface`` (an RGBA image).

    Images are requested from ``asset_loader`` the first time a reference is
    seen and cached by reference for the renderer's lifetime. While an image
    is loading, or after it failed, its sector shows a placeholder disc.
    ``on_asset_ready(reference)`` is called when a load finishes so the host
    can schedule a redraw.
    """

    def __init__(self, surface=None, size=400, asset_loader=None, on_asset_ready=None,
                 pointer_offset=DEFAULT_POINTER_OFFSET, colors=FILL_COLORS):
        if surface is None:
            surface = Image.new('RGBA', (size, size), (0, 0, 0, 0))
        if surface.mode != 'RGBA':
            raise ValueError('surface must be an RGBA image')
        self.surface = surface
        self.asset_loader = asset_loader
        self.on_asset_ready = on_asset_ready
        self.pointer_offset = pointer_offset
        self.colors = colors

        width, height = surface.size
        self.center = (width / 2, height / 2)
        self.radius = min(width, height) / 2 - 2
        self.slot_size = max(int(self.radius * IMAGE_SLOT_RATIO), 8)
        self.font = _load_font(max(self.slot_size * 2 // 5, 8))

        self._images = {}
        self._failed = set()
        self._pending = {}
        self._assets_version = 0
        self._base = None
        self._base_key = None
        self._lock = threading.Lock()
        self.frames_rendered = 0

    def image_status(self, reference):
        if reference in self._images:
            return 'loaded'
        if reference in self._failed:
            return 'failed'
        if reference in self._pending:
            return 'pending'
        return None

    def render(self, items, angle):
        items = tuple(items)
        with self._lock:
            self._collect_assets()
            self._request_assets(items)

            key = (tuple((item.id, item.label, item.image, item.rotation) for item in items),
                   self._assets_version)
            if key != self._base_key:
                self._base = self._draw_wheel(items)
                self._base_key = key

            wheel = self._base
            if angle % 360.0:
                # Pillow rotates counter-clockwise, the wheel turns clockwise
                wheel = wheel.rotate(-angle, resample=Image.Resampling.BICUBIC)

            self.surface.paste((0, 0, 0, 0), (0, 0) + self.surface.size)
            self.surface.alpha_composite(wheel)
            self._draw_pointer(ImageDraw.Draw(self.surface))
            self.frames_rendered += 1
        return self.surface

    def snapshot(self):
        """Copy of the last painted frame"""
        with self._lock:
            return self.surface.copy()

    # -- assets -----------------------------------------------------------

    def _request_assets(self, items):
        if self.asset_loader is None:
            return
        for item in items:
            reference = item.image
            if not reference or self.image_status(reference) is not None:
                continue
            try:
                future = self.asset_loader.load(reference)
            except Exception as e:
                self._mark_failed(reference, e)
                continue
            self._pending[reference] = future
            future.add_done_callback(lambda _f, ref=reference: self._notify_ready(ref))

    def _collect_assets(self):
        for reference, future in list(self._pending.items()):
            if not future.done():
                continue
            del self._pending[reference]
            try:
                self._images[reference] = future.result()
            except Exception as e:
                self._mark_failed(reference, e)
            else:
                self._assets_version += 1
                logger.info(f"🖼️ Image ready: {reference}")

    def _mark_failed(self, reference, error):
        self._failed.add(reference)
        logger.warning(f"⚠️ Image unavailable, using placeholder: {error}")

    def _notify_ready(self, reference):
        if self.on_asset_ready is None:
            return
        try:
            self.on_asset_ready(reference)
        except Exception as e:
            logger.error(f"💥 Asset-ready callback error: {e}")

    # -- drawing ----------------------------------------------------------

    def _draw_wheel(self, items):
        base = Image.new('RGBA', self.surface.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(base)
        cx, cy = self.center
        box = [cx - self.radius, cy - self.radius, cx + self.radius, cy + self.radius]
        if not items:
            draw.ellipse(box, fill='#e5e7eb', outline='white', width=2)
            return base

        count = len(items)
        arc = 360.0 / count
        for index, item in enumerate(items):
            start = index * arc
            draw.pieslice(box, start, start + arc, fill=self.colors[index % len(self.colors)],
                          outline='white', width=2)

        for index, item in enumerate(items):
            middle = math.radians(index * arc + arc / 2)
            distance = self.radius * IMAGE_DISTANCE_RATIO
            slot_center = (cx + math.cos(middle) * distance, cy + math.sin(middle) * distance)
            image = self._images.get(item.image) if item.image else None
            if image is not None:
                self._paste_image(base, image, slot_center, item.rotation)
            else:
                self._draw_placeholder(draw, index, count, item, slot_center)
        return base

    def _paste_image(self, base, image, slot_center, rotation):
        size = self.slot_size
        thumb = image.resize((size, size), Image.Resampling.LANCZOS)
        if rotation:
            thumb = thumb.rotate(-rotation, resample=Image.Resampling.BICUBIC)
        mask = Image.new('L', (size, size), 0)
        ImageDraw.Draw(mask).ellipse([0, 0, size - 1, size - 1], fill=255)
        mask = ImageChops.multiply(mask, thumb.getchannel('A'))
        x, y = slot_center
        base.paste(thumb, (int(round(x - size / 2)), int(round(y - size / 2))), mask)

    def _draw_placeholder(self, draw, index, count, item, slot_center):
        x, y = slot_center
        half = self.slot_size / 2
        draw.ellipse([x - half, y - half, x + half, y + half],
                     fill=placeholder_color(index, count), outline='white', width=3)
        text = item.initial
        left, top, right, bottom = draw.textbbox((0, 0), text, font=self.font)
        draw.text((x - (left + right) / 2, y - (top + bottom) / 2), text,
                  fill='white', font=self.font)

    def _draw_pointer(self, draw):
        cx, cy = self.center
        theta = math.radians(self.pointer_offset)
        ux, uy = math.cos(theta), math.sin(theta)
        px, py = -uy, ux
        tip_distance = self.radius - self.slot_size * 0.75
        half_width = self.slot_size * 0.4
        tip = (cx + ux * tip_distance, cy + uy * tip_distance)
        back = (cx + ux * self.radius, cy + uy * self.radius)
        points = [
            tip,
            (back[0] + px * half_width, back[1] + py * half_width),
            (back[0] - px * half_width, back[1] - py * half_width),
        ]
        draw.polygon(points, fill=POINTER_COLOR, outline=POINTER_OUTLINE)

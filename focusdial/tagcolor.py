"""Deterministic tag colors derived from the theme accent.

Colors are parsed without any UI toolkit. A tag's automatic color is a small
hue/saturation/lightness jitter around the accent, driven by a 32-bit FNV-1a
hash of the accent identity and the normalized tag.
"""

from __future__ import annotations

import colorsys
import logging
import math
import random
import re
from dataclasses import dataclass
from typing import Mapping

logger = logging.getLogger(__name__)

DEFAULT_ACCENT = "#16a34a"

# Jitter ranges around the accent (full width; applied as +/- half)
HUE_SPREAD = 40.0
SAT_SPREAD = 0.4
LIGHT_SPREAD = 0.34
RANDOM_LIGHT_SPREAD = 0.24

SAT_RANGE = (0.2, 0.95)
LIGHT_RANGE = (0.2, 0.7)

# Color picker surface: hue along x, lightness along y
PICKER_SAT = 0.85
PICKER_LIGHT_MIN = 0.2
PICKER_LIGHT_RANGE = 0.6

RANDOMIZE_ATTEMPTS = 4

_FUNC_RE = re.compile(r"^(rgba?|hsla?)\(([^)]*)\)$", re.IGNORECASE)


@dataclass(frozen=True)
class ColorInfo:
    r: int
    g: int
    b: int
    normalized: str


@dataclass(frozen=True)
class AccentMeta:
    """Resolved accent: identity string plus its (hue deg, sat, light)."""

    accent_key: str
    base_hsl: tuple[float, float, float]


def _round(x: float) -> int:
    return int(math.floor(x + 0.5))


def _clamp(n: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, n))


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{int(_clamp(_round(c), 0, 255)):02x}" for c in (r, g, b))


def hex_to_rgb(text: str) -> ColorInfo | None:
    h = text.strip().lstrip("#")
    if len(h) in (3, 4):
        h = "".join(ch + ch for ch in h[:3])
    elif len(h) == 8:
        h = h[:6]
    if len(h) != 6:
        return None
    try:
        r, g, b = (int(h[i : i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return None
    return ColorInfo(r, g, b, f"#{h.lower()}")


def _channel(part: str) -> float:
    part = part.strip()
    if part.endswith("%"):
        return float(part[:-1]) * 255 / 100
    return float(part)


def _fraction(part: str) -> float:
    part = part.strip()
    if part.endswith("%"):
        return float(part[:-1]) / 100
    return float(part)


def rgb_to_hsl(r: float, g: float, b: float) -> tuple[float, float, float]:
    """Convert 0-255 RGB to (hue degrees, saturation, lightness)."""
    h, l, s = colorsys.rgb_to_hls(r / 255, g / 255, b / 255)
    return h * 360, s, l


def hsl_to_rgb(h: float, s: float, l: float) -> tuple[int, int, int]:
    """Convert (hue degrees, saturation, lightness) to 0-255 RGB."""
    h = (h % 360 + 360) % 360
    r, g, b = colorsys.hls_to_rgb(h / 360, l, s)
    return _round(r * 255), _round(g * 255), _round(b * 255)


def hsl_to_rgb_string(h: float, s: float, l: float) -> str:
    r, g, b = hsl_to_rgb(h, s, l)
    return f"rgb({r}, {g}, {b})"


def parse_color(color: object) -> ColorInfo | None:
    """Parse a CSS hex, rgb()/rgba() or hsl()/hsla() color.

    Returns:
        ColorInfo with a normalized '#rrggbb' identity, or None if the value
        is not a recognized color.
    """
    if not isinstance(color, str) or not color.strip():
        return None
    text = color.strip()
    if text.startswith("#"):
        return hex_to_rgb(text)
    match = _FUNC_RE.match(text)
    if not match:
        return None
    kind = match[1].lower()
    parts = [p for p in re.split(r"[\s,/]+", match[2].strip()) if p]
    if len(parts) < 3:
        return None
    try:
        if kind.startswith("rgb"):
            r, g, b = (_clamp(_channel(p), 0, 255) for p in parts[:3])
            rgb = (_round(r), _round(g), _round(b))
        else:
            hue = float(parts[0].removesuffix("deg"))
            sat = _clamp(_fraction(parts[1]), 0, 1)
            light = _clamp(_fraction(parts[2]), 0, 1)
            rgb = hsl_to_rgb(hue, sat, light)
    except ValueError:
        return None
    return ColorInfo(*rgb, rgb_to_hex(*rgb))


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash over UTF-16 code units."""
    h = 2166136261
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * 16777619) & 0xFFFFFFFF
    return h


def normalize_tag_key(tag: object) -> str:
    """Lowercased, trimmed tag key; empty string for blank or non-string."""
    if isinstance(tag, str) and tag.strip():
        return tag.strip().lower()
    return ""


def session_fallback_key(start_ms: object) -> str:
    """Fallback color key for an untagged session, anchored on its start."""
    if isinstance(start_ms, bool) or not isinstance(start_ms, (int, float)) or math.isnan(start_ms):
        return "session-unknown"
    return f"session-{_round(start_ms)}"


_DEFAULT_INFO = hex_to_rgb(DEFAULT_ACCENT)
assert _DEFAULT_INFO is not None
DEFAULT_ACCENT_META = AccentMeta(
    accent_key=_DEFAULT_INFO.normalized,
    base_hsl=rgb_to_hsl(_DEFAULT_INFO.r, _DEFAULT_INFO.g, _DEFAULT_INFO.b),
)


def resolve_accent(accent: str | AccentMeta | None) -> AccentMeta:
    """Resolve an accent color string, falling back to the default accent."""
    if isinstance(accent, AccentMeta):
        return accent
    info = parse_color(accent)
    if info is None:
        if accent:
            logger.debug("Unparseable accent %r, using default", accent)
        return DEFAULT_ACCENT_META
    return AccentMeta(accent_key=info.normalized, base_hsl=rgb_to_hsl(info.r, info.g, info.b))


def jitter_color(base_hsl: tuple[float, float, float], key: str) -> str:
    base_h, base_s, base_l = base_hsl
    hash_ = fnv1a_32(key or "")
    hue_shift = ((hash_ & 0xFF) / 255 - 0.5) * HUE_SPREAD
    sat_shift = (((hash_ >> 8) & 0xFF) / 255 - 0.5) * SAT_SPREAD
    light_shift = (((hash_ >> 16) & 0xFF) / 255 - 0.5) * LIGHT_SPREAD
    h = (base_h + hue_shift + 360) % 360
    s = _clamp(base_s + sat_shift, *SAT_RANGE)
    l = _clamp(base_l + light_shift, *LIGHT_RANGE)
    return hsl_to_rgb_string(h, s, l)


def random_color(accent: str | AccentMeta | None, rng: random.Random | None = None) -> str:
    """A random color in the accent's neighbourhood."""
    rng = rng or random.Random()
    base_h, base_s, base_l = resolve_accent(accent).base_hsl
    h = (base_h + (rng.random() - 0.5) * HUE_SPREAD + 360) % 360
    s = _clamp(base_s + (rng.random() - 0.5) * SAT_SPREAD, *SAT_RANGE)
    l = _clamp(base_l + (rng.random() - 0.5) * RANDOM_LIGHT_SPREAD, *LIGHT_RANGE)
    return hsl_to_rgb_string(h, s, l)


def color_from_picker(x: float, y: float) -> str:
    """Map a click on the picker surface (both axes in [0, 1]) to a hex color."""
    hue = _clamp(x, 0, 1) * 360
    lightness = PICKER_LIGHT_MIN + (1 - _clamp(y, 0, 1)) * PICKER_LIGHT_RANGE
    return rgb_to_hex(*hsl_to_rgb(hue, PICKER_SAT, lightness))


class TagColorEngine:
    """Resolves tag colors with user overrides and a per-accent cache.

    Not thread-safe; owned by a single event loop.
    """

    def __init__(self) -> None:
        self._cache: dict[str, str] = {}
        self._accent_key: str | None = None

    def clear_cache(self) -> None:
        self._cache.clear()

    def color_for_tag(
        self,
        tag: str | None,
        fallback_key: str | None,
        accent: str | AccentMeta | None,
        overrides: Mapping[str, str] | None = None,
    ) -> str:
        """Resolve the display color for a tag.

        Resolution order: the tag's override, the fallback key's override when
        the tag is empty, then the derived accent jitter.
        """
        key_tag = normalize_tag_key(tag)
        key_fallback = normalize_tag_key(fallback_key)
        overrides = overrides or {}
        if key_tag and overrides.get(key_tag):
            return overrides[key_tag]
        if not key_tag and key_fallback and overrides.get(key_fallback):
            return overrides[key_fallback]

        meta = resolve_accent(accent)
        if meta.accent_key != self._accent_key:
            # Accent changed: every derived color is stale
            self._cache.clear()
            self._accent_key = meta.accent_key
        jitter_key = key_tag or key_fallback or "untagged"
        cache_key = f"{meta.accent_key}|{jitter_key}"
        color = self._cache.get(cache_key)
        if color is None:
            color = jitter_color(meta.base_hsl, cache_key)
            self._cache[cache_key] = color
        return color

    def randomize(
        self,
        tag_key: str,
        accent: str | AccentMeta | None,
        overrides: Mapping[str, str] | None = None,
        *,
        rng: random.Random | None = None,
        attempts: int = RANDOMIZE_ATTEMPTS,
    ) -> str:
        """Pick a random accent-neighbour color differing from the current one.

        Retries at most `attempts` times; a repeat is possible but unlikely.
        """
        rng = rng or random.Random()
        current = self.color_for_tag(tag_key, tag_key, accent, overrides)
        color = random_color(accent, rng)
        for _ in range(attempts):
            if color != current:
                break
            color = random_color(accent, rng)
        return color

from dataclasses import dataclass
from typing import Optional, Tuple

RGB = Tuple[int, int, int]


@dataclass(frozen=True)
class ColorSpec:
    """A selectable hair color. ``rgb`` is None for the natural (no-op) entry."""
    id: str
    name: str
    rgb: Optional[RGB]

    @property
    def is_natural(self) -> bool:
        return self.rgb is None

    @property
    def hex(self) -> Optional[str]:
        if self.rgb is None:
            return None
        return "#{:02x}{:02x}{:02x}".format(*self.rgb)


NATURAL = ColorSpec("natural", "Natural", None)

# ---------------- CATALOG ----------------
HAIR_COLORS = (
    NATURAL,
    ColorSpec("jet-black", "Jet Black", (28, 26, 28)),
    ColorSpec("dark-brown", "Dark Brown", (74, 48, 32)),
    ColorSpec("chestnut", "Chestnut", (128, 70, 39)),
    ColorSpec("caramel", "Caramel", (176, 111, 60)),
    ColorSpec("honey-blonde", "Honey Blonde", (214, 167, 102)),
    ColorSpec("platinum", "Platinum", (229, 222, 208)),
    ColorSpec("copper", "Copper", (184, 84, 40)),
    ColorSpec("burgundy", "Burgundy", (128, 24, 48)),
    ColorSpec("rose-pink", "Rose Pink", (232, 120, 160)),
    ColorSpec("violet", "Violet", (112, 56, 160)),
    ColorSpec("ocean-blue", "Ocean Blue", (40, 96, 176)),
)

_BY_ID = {c.id: c for c in HAIR_COLORS}


def find_color(color_id: str) -> ColorSpec:
    try:
        return _BY_ID[color_id]
    except KeyError:
        raise KeyError(f"Unknown hair color: {color_id!r}") from None


def parse_color(value: str) -> ColorSpec:
    """Resolve a catalog id or a hex string (``#rrggbb``) to a ColorSpec."""
    value = value.strip()
    if value.lower() in _BY_ID:
        return _BY_ID[value.lower()]

    hexv = value.lstrip('#')
    if len(hexv) != 6:
        raise ValueError(f"Not a catalog color or #rrggbb value: {value!r}")
    try:
        r = int(hexv[0:2], 16)
        g = int(hexv[2:4], 16)
        b = int(hexv[4:6], 16)
    except ValueError:
        raise ValueError(f"Not a catalog color or #rrggbb value: {value!r}") from None
    return ColorSpec(f"custom-{hexv.lower()}", f"#{hexv.lower()}", (r, g, b))

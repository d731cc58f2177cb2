"""
DRIVER DIAGRAM PALETTE - Named Colours for Nodes

Nodes reference palette entries by value (a hex string). The palette keeps
entries in the order they were added and treats values case-insensitively,
so "#FFCC00" and "#ffcc00" are the same entry.
"""
import re
from typing import Iterable, List, Optional

from core.schemas import PaletteEntry, default_label


HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3,4}|[0-9a-fA-F]{6}|[0-9a-fA-F]{8})$")


class PaletteError(Exception):
    """Base exception for palette operations."""
    pass


class InvalidColorError(PaletteError):
    """Raised when a colour value is not a hex colour string."""
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Not a hex colour: {value!r}")


def is_hex_color(value: str) -> bool:
    return bool(HEX_COLOR_RE.match((value or "").strip()))


class ColorPalette:
    """
    Ordered colour palette keyed on value.

    Usage:
        palette = ColorPalette()
        palette.upsert("#F4CCCC", "Safety")
        palette.upsert("#f4cccc", "Patient safety")   # renames, no duplicate
        palette.find("#F4CCCC").label                 # "Patient safety"
    """

    def __init__(self, entries: Optional[Iterable[PaletteEntry]] = None):
        self._entries: List[PaletteEntry] = []
        for entry in entries or []:
            if self.find(entry.value) is None:
                self._entries.append(PaletteEntry(label=entry.label, value=entry.value))

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __contains__(self, value: str) -> bool:
        return self.find(value) is not None

    def __repr__(self) -> str:
        return f"ColorPalette(entries={len(self._entries)})"

    def entries(self) -> List[PaletteEntry]:
        """Copy of the entries, in palette order."""
        return [PaletteEntry(label=e.label, value=e.value) for e in self._entries]

    def find(self, value: str) -> Optional[PaletteEntry]:
        for entry in self._entries:
            if entry.matches(value):
                return entry
        return None

    def label_for(self, value: str) -> str:
        """Label of the entry for `value`, or "" when the value is not in the palette."""
        entry = self.find(value)
        return entry.label if entry else ""

    def upsert(self, value: str, label: str = "") -> PaletteEntry:
        """
        Add a colour, or rename it when the value is already present.

        Args:
            value: Hex colour string
            label: Display name. Blank keeps the existing label, or becomes
                   "Colour N" for a new entry.

        Returns:
            The stored entry

        Raises:
            InvalidColorError: If value is not a hex colour
        """
        value = (value or "").strip()
        if not is_hex_color(value):
            raise InvalidColorError(value)

        label = (label or "").strip()
        existing = self.find(value)
        if existing is not None:
            if label:
                existing.label = label
            return existing

        entry = PaletteEntry(label=label or default_label(len(self._entries) + 1), value=value)
        self._entries.append(entry)
        return entry

    def remove(self, value: str) -> Optional[PaletteEntry]:
        """Remove the entry for `value`. Returns it, or None when absent."""
        entry = self.find(value)
        if entry is not None:
            self._entries.remove(entry)
        return entry

    @classmethod
    def from_used_colors(cls, colors: Iterable[str]) -> "ColorPalette":
        """
        Rebuild a palette from the colours nodes actually use.

        Distinct values (case-insensitive, first spelling wins) become
        "Colour 1", "Colour 2", ... in the order they are encountered.
        Values are taken as found, without hex validation.
        """
        palette = cls()
        for raw in colors:
            value = (raw or "").strip()
            if value and palette.find(value) is None:
                palette._entries.append(
                    PaletteEntry(label=default_label(len(palette._entries) + 1), value=value)
                )
        return palette

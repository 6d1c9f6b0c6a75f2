"""Paginated inline-keyboard menus with a short-lived selection store.

A menu shows at most ``page_size`` candidates per page, ``per_row``
buttons per keyboard row. Each button's callback data carries the
candidate's global index (page * page_size + offset) instead of the
candidate itself, which keeps callback data well under Telegram's 64-byte
limit. When the button is tapped, resolve() maps the index back to the
candidate remembered for that owner key at render time.

Stored menus expire after ``ttl`` seconds (default 10 minutes) so
abandoned menus do not accumulate. Expired entries are swept lazily on
every store access.

Key class: SelectionPaginator.
"""

import logging
import time
from collections.abc import Callable, Sequence
from typing import Generic, TypeVar

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from .handlers.callback_data import CB_NOOP

logger = logging.getLogger(__name__)

T = TypeVar("T")

PAGE_SIZE = 20
BUTTONS_PER_ROW = 5
SELECTION_TTL = 600.0  # seconds


class SelectionPaginator(Generic[T]):
    """Builds paged keyboards and resolves taps back to candidates."""

    def __init__(
        self,
        pick_prefix: str,
        page_prefix: str,
        label: Callable[[T], str] = str,
        *,
        page_size: int = PAGE_SIZE,
        per_row: int = BUTTONS_PER_ROW,
        ttl: float = SELECTION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.pick_prefix = pick_prefix
        self.page_prefix = page_prefix
        self.label = label
        self.page_size = page_size
        self.per_row = per_row
        self.ttl = ttl
        self._clock = clock
        # owner_key -> (expires_at, {global_index: candidate})
        self._store: dict[str, tuple[float, dict[int, T]]] = {}

    # --- Rendering ---

    def total_pages(self, total: int) -> int:
        return max(1, (total + self.page_size - 1) // self.page_size)

    def page_indices(self, total: int, page: int) -> range:
        """Global indices shown on ``page`` (empty when out of range)."""
        start = page * self.page_size
        return range(min(start, total), min(start + self.page_size, total))

    def render_page(
        self,
        candidates: Sequence[T],
        page: int = 0,
        selected: Callable[[T], bool] | None = None,
    ) -> InlineKeyboardMarkup:
        """Build the keyboard for one page of candidates.

        Selected candidates get a check-mark prefix. A navigation row is
        appended only when there is more than one page.
        """
        total = len(candidates)
        pages = self.total_pages(total)
        page = max(0, min(page, pages - 1))

        rows: list[list[InlineKeyboardButton]] = []
        row: list[InlineKeyboardButton] = []
        for idx in self.page_indices(total, page):
            candidate = candidates[idx]
            text = self.label(candidate)
            if selected is not None and selected(candidate):
                text = f"✅ {text}"
            row.append(
                InlineKeyboardButton(text, callback_data=f"{self.pick_prefix}{idx}")
            )
            if len(row) == self.per_row:
                rows.append(row)
                row = []
        if row:
            rows.append(row)

        if pages > 1:
            nav: list[InlineKeyboardButton] = []
            if page > 0:
                nav.append(
                    InlineKeyboardButton(
                        "⬅ Prev", callback_data=f"{self.page_prefix}{page - 1}"
                    )
                )
            nav.append(
                InlineKeyboardButton(f"{page + 1}/{pages}", callback_data=CB_NOOP)
            )
            if page < pages - 1:
                nav.append(
                    InlineKeyboardButton(
                        "Next ➡", callback_data=f"{self.page_prefix}{page + 1}"
                    )
                )
            rows.append(nav)

        return InlineKeyboardMarkup(rows)

    # --- Selection store ---

    def _sweep(self) -> None:
        now = self._clock()
        expired = [k for k, (exp, _) in self._store.items() if exp <= now]
        for key in expired:
            del self._store[key]
        if expired:
            logger.debug("Swept %d expired selection menus", len(expired))

    def remember(self, owner_key: str, candidates: Sequence[T]) -> None:
        """Store candidates by global index for a later resolve()."""
        self._sweep()
        self._store[owner_key] = (
            self._clock() + self.ttl,
            dict(enumerate(candidates)),
        )

    def resolve(self, owner_key: str, index: int) -> T | None:
        """Candidate stored at ``index`` for ``owner_key``, or None."""
        self._sweep()
        entry = self._store.get(owner_key)
        if entry is None:
            return None
        return entry[1].get(index)

    def stored(self, owner_key: str) -> list[T] | None:
        """All live candidates for an owner key, in index order."""
        self._sweep()
        entry = self._store.get(owner_key)
        if entry is None:
            return None
        items = entry[1]
        return [items[i] for i in sorted(items)]

    def forget(self, owner_key: str) -> None:
        self._store.pop(owner_key, None)

    @staticmethod
    def parse_index(data: str, prefix: str) -> int | None:
        """Parse the integer suffix of callback data, None if malformed."""
        try:
            return int(data[len(prefix) :])
        except ValueError:
            return None

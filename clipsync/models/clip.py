"""Data models for clips and clip queries."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta

# Bound format shared by stored created_at values and date filters
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_DAY_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{4})")
_MONTH_RE = re.compile(r"(\d{1,2})/(\d{4})")
_YEAR_RE = re.compile(r"(\d{4})")


@dataclass
class Clip:
    """Stored clip record."""

    id: str
    url: str
    title: str
    game_name: str
    broadcaster_name: str
    created_at: str
    view_count: int = 0

    @classmethod
    def from_helix(cls, payload: dict) -> Clip:
        """Build a record from a Helix clip object.

        Helix only carries ``game_id``; the sync service fills ``game_name``
        into the payload before conversion.
        Unknown games are stored as an empty string.
        """
        return cls(
            id=payload["id"],
            url=payload.get("url", ""),
            title=payload.get("title") or "",
            game_name=payload.get("game_name") or "",
            broadcaster_name=payload.get("broadcaster_name") or "",
            created_at=payload["created_at"],
            view_count=int(payload.get("view_count") or 0),
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ClipPage:
    """One page of Helix clip results."""

    clips: list[dict] = field(default_factory=list)
    cursor: str | None = None


def normalize_text(value: str) -> str:
    """Lower-case and strip combining accents (``"Élan"`` -> ``"elan"``)."""
    decomposed = unicodedata.normalize("NFD", value.lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def format_timestamp(value: datetime) -> str:
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_date_range(value: str) -> tuple[str, str]:
    """Turn ``DD/MM/YYYY``, ``MM/YYYY`` or ``YYYY`` into a half-open UTC range.

    Raises:
        ValueError: unrecognised format or impossible date.
    """
    value = value.strip()

    if m := _DAY_RE.fullmatch(value):
        day, month, year = (int(g) for g in m.groups())
        start = datetime(year, month, day, tzinfo=UTC)
        end = start + timedelta(days=1)
    elif m := _MONTH_RE.fullmatch(value):
        month, year = (int(g) for g in m.groups())
        start = datetime(year, month, 1, tzinfo=UTC)
        end = (
            datetime(year + 1, 1, 1, tzinfo=UTC)
            if month == 12
            else datetime(year, month + 1, 1, tzinfo=UTC)
        )
    elif m := _YEAR_RE.fullmatch(value):
        year = int(m.group(1))
        start = datetime(year, 1, 1, tzinfo=UTC)
        end = datetime(year + 1, 1, 1, tzinfo=UTC)
    else:
        raise ValueError(f"Unsupported date format: {value!r} (use DD/MM/YYYY, MM/YYYY or YYYY)")

    return start.strftime(TIMESTAMP_FORMAT), end.strftime(TIMESTAMP_FORMAT)


@dataclass
class ClipFilters:
    """Normalised filters for a random clip lookup.

    Empty strings are treated as absent, so a clip with an unknown game
    (stored as ``""``) is simply not constrained by a missing game filter.
    """

    created_from: str | None = None
    created_before: str | None = None
    title: str | None = None
    game: str | None = None

    @classmethod
    def from_query(
        cls,
        date: str | None = None,
        title: str | None = None,
        game: str | None = None,
    ) -> ClipFilters:
        """Build filters from raw query values. Raises ValueError on a bad date."""
        created_from = created_before = None
        if date and date.strip():
            created_from, created_before = parse_date_range(date)
        return cls(
            created_from=created_from,
            created_before=created_before,
            title=normalize_text(title.strip()) if title and title.strip() else None,
            game=normalize_text(game.strip()) if game and game.strip() else None,
        )

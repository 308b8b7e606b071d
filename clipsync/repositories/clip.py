"""Repository for the clips table."""

from __future__ import annotations

import logging

import asyncpg

from clipsync.models.clip import Clip, ClipFilters

logger = logging.getLogger(__name__)

_COLUMNS = "id, url, title, game_name, broadcaster_name, created_at, view_count"


def _escape_like(needle: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _rows_affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``"INSERT 0 1"``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (ValueError, AttributeError):
        return 0


def _clip_args(clip: Clip) -> tuple:
    return (
        clip.id,
        clip.url,
        clip.title,
        clip.game_name,
        clip.broadcaster_name,
        clip.created_at,
        clip.view_count,
    )


class ClipRepository:
    """Pure SQL operations for the clips table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    # ==================== Writes ====================

    async def upsert_ignore(self, clip: Clip) -> bool:
        """Insert a clip unless the id is already stored.

        Returns True only when a new row was written. This is the signal
        the incremental check uses to decide whether to notify.
        """
        async with self.pool.acquire() as conn:
            status = await conn.execute(
                f"""
                INSERT INTO clips ({_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (id) DO NOTHING
                """,
                *_clip_args(clip),
            )
        return _rows_affected(status) > 0

    async def upsert_replace(self, clip: Clip) -> bool:
        """Insert or overwrite a clip, keeping the original created_at.

        Returns True when the row did not exist before.
        """
        async with self.pool.acquire() as conn:
            inserted = await conn.fetchval(
                f"""
                INSERT INTO clips ({_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (id) DO UPDATE SET
                    url              = EXCLUDED.url,
                    title            = EXCLUDED.title,
                    game_name        = EXCLUDED.game_name,
                    broadcaster_name = EXCLUDED.broadcaster_name,
                    view_count       = EXCLUDED.view_count
                RETURNING (xmax = 0) AS inserted
                """,
                *_clip_args(clip),
            )
        return bool(inserted)

    # ==================== Reads ====================

    async def exists(self, clip_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return bool(
                await conn.fetchval("SELECT EXISTS(SELECT 1 FROM clips WHERE id = $1)", clip_id)
            )

    async def count(self) -> int:
        async with self.pool.acquire() as conn:
            return int(await conn.fetchval("SELECT COUNT(*) FROM clips") or 0)

    async def query_random(self, filters: ClipFilters) -> Clip | None:
        """Return one uniformly random clip matching every given filter."""
        conditions: list[str] = []
        args: list[str] = []

        def bind(value: str) -> str:
            args.append(value)
            return f"${len(args)}"

        if filters.created_from:
            conditions.append(f"created_at >= {bind(filters.created_from)}")
        if filters.created_before:
            conditions.append(f"created_at < {bind(filters.created_before)}")
        if filters.title:
            conditions.append(
                f"lower(unaccent(title)) LIKE {bind(f'%{_escape_like(filters.title)}%')}"
            )
        if filters.game:
            conditions.append(
                f"lower(unaccent(game_name)) LIKE {bind(f'%{_escape_like(filters.game)}%')}"
            )

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"SELECT {_COLUMNS} FROM clips {where} ORDER BY random() LIMIT 1"  # noqa: S608

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, *args)
            if not row:
                return None
            return Clip(**dict(row))

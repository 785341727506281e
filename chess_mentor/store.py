"""Position stores: authoritative game records with optimistic versioning.

Every record carries a version that increases by one on each write.
Writers may pass expected_version; if the stored version differs the
write is refused with VersionConflictError and nothing changes.

InMemoryGameStore keeps records in a dict. SqliteGameStore persists
them in a single table, using a conditional UPDATE for the version
check.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import json
import sqlite3
import threading
import uuid
from dataclasses import asdict
from pathlib import Path
from typing import Any

import chess

from chess_mentor.errors import (
    ConcurrentMoveError,
    GameNotFoundError,
    VersionConflictError,
)
from chess_mentor.models import (
    BestMove,
    Choice,
    Difficulty,
    GameRecord,
    MovePreview,
    PreviewMove,
    TurnPackage,
)
from chess_mentor.personas import Persona

_UPDATABLE_FIELDS = {"position", "current_turn", "rating", "status"}


def new_game_id() -> str:
    return str(uuid.uuid4())


def side_of(position: str) -> str:
    """'w' or 'b' for the side to move in a FEN."""
    return "w" if chess.Board(position).turn == chess.WHITE else "b"


def _apply(position: str, move_code: str) -> str | None:
    board = chess.Board(position)
    try:
        move = chess.Move.from_uci(move_code)
    except (chess.InvalidMoveError, ValueError):
        return None
    if move not in board.legal_moves:
        return None
    board.push(move)
    return board.fen()


def _check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")


# ---------------------------------------------------------------------------
# Turn package (de)serialisation
# ---------------------------------------------------------------------------


def _preview_move(data: dict | None) -> PreviewMove | None:
    if data is None:
        return None
    return PreviewMove(move=data["move"], san=data["san"])


def turn_from_dict(data: dict) -> TurnPackage:
    """Rebuild a TurnPackage from its asdict() form."""
    choices = []
    for c in data["choices"]:
        preview = c.get("preview")
        choices.append(
            Choice(
                id=c["id"],
                move=c["move"],
                persona=Persona(c["persona"]),
                plan_text=c["plan_text"],
                principal_variation=list(c.get("principal_variation", [])),
                eval_estimate=c.get("eval_estimate", 0),
                concept_tags=list(c.get("concept_tags", [])),
                preview=None if preview is None else MovePreview(
                    move_from=preview["move_from"],
                    move_to=preview["move_to"],
                    newly_attacked=list(preview.get("newly_attacked", [])),
                    opponent_reply=_preview_move(preview.get("opponent_reply")),
                    follow_up=_preview_move(preview.get("follow_up")),
                ),
            )
        )
    return TurnPackage(
        game_id=data["game_id"],
        position=data["position"],
        side_to_move=data["side_to_move"],
        choices=choices,
        best_move=BestMove(**data["best_move"]),
        difficulty=Difficulty(**data["difficulty"]),
        time_budget_ms=data["time_budget_ms"],
        is_quick=data.get("is_quick", False),
    )


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class InMemoryGameStore:
    """Dict-backed store for single-process deployments and tests."""

    def __init__(self) -> None:
        self._games: dict[str, GameRecord] = {}
        self._lock = threading.Lock()

    def create_game(
        self,
        rating: int = 1200,
        position: str = chess.STARTING_FEN,
        game_id: str | None = None,
    ) -> str:
        """Create a game record and return its id."""
        game_id = game_id or new_game_id()
        with self._lock:
            if game_id in self._games:
                raise ValueError(f"Game already exists: {game_id}")
            self._games[game_id] = GameRecord(
                game_id=game_id, position=position, rating=rating
            )
        return game_id

    def get_game(self, game_id: str) -> GameRecord | None:
        with self._lock:
            record = self._games.get(game_id)
            return dataclasses.replace(record) if record is not None else None

    def update_game(
        self,
        game_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> GameRecord:
        """Apply a partial update, bumping the version.

        Raises:
            GameNotFoundError: Unknown game id.
            VersionConflictError: expected_version is stale.
        """
        _check_fields(fields)
        with self._lock:
            record = self._games.get(game_id)
            if record is None:
                raise GameNotFoundError(game_id)
            if expected_version is not None and record.version != expected_version:
                raise VersionConflictError(game_id, expected_version, record.version)
            updated = dataclasses.replace(record, version=record.version + 1, **fields)
            self._games[game_id] = updated
            return dataclasses.replace(updated)

    def get_position(self, game_id: str) -> str | None:
        record = self.get_game(game_id)
        return record.position if record is not None else None

    def apply_move(
        self, game_id: str, move_code: str, expected_version: int | None = None
    ) -> str | None:
        """Apply a legal move to the stored position.

        Returns:
            The new FEN, or None if the move is illegal (nothing written).
        """
        record = self.get_game(game_id)
        if record is None:
            raise GameNotFoundError(game_id)
        new_position = _apply(record.position, move_code)
        if new_position is None:
            return None
        version = record.version if expected_version is None else expected_version
        self.update_game(game_id, {"position": new_position}, expected_version=version)
        return new_position

    def is_game_over(self, game_id: str) -> bool:
        position = self.get_position(game_id)
        if position is None:
            return True
        return chess.Board(position).is_game_over()

    def side_to_move(self, game_id: str) -> str | None:
        position = self.get_position(game_id)
        return side_of(position) if position is not None else None


# ---------------------------------------------------------------------------
# SQLite store
# ---------------------------------------------------------------------------


class SqliteGameStore:
    """Persistent store with compare-and-swap updates on the version column.

    Thread-safe: a threading.Lock serialises all connection access so the
    single sqlite3.Connection can be shared. Calls block, so async code
    reaches them through store_call, which runs them in a worker thread.
    """

    def __init__(self, db_path: str | Path) -> None:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_table()

    def _create_table(self) -> None:
        with self._lock:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS games (
                    game_id      TEXT PRIMARY KEY,
                    position     TEXT NOT NULL,
                    rating       INTEGER NOT NULL,
                    current_turn TEXT,
                    version      INTEGER NOT NULL,
                    status       TEXT NOT NULL,
                    created_at   TEXT NOT NULL
                )
                """
            )
            self._conn.commit()

    @staticmethod
    def _to_row_value(name: str, value: Any) -> Any:
        if name == "current_turn":
            return None if value is None else json.dumps(asdict(value))
        return value

    @staticmethod
    def _from_row(row: tuple) -> GameRecord:
        game_id, position, rating, current_turn, version, status, created_at = row
        return GameRecord(
            game_id=game_id,
            position=position,
            rating=rating,
            current_turn=turn_from_dict(json.loads(current_turn)) if current_turn else None,
            version=version,
            status=status,
            created_at=created_at,
        )

    def create_game(
        self,
        rating: int = 1200,
        position: str = chess.STARTING_FEN,
        game_id: str | None = None,
    ) -> str:
        record = GameRecord(game_id=game_id or new_game_id(), position=position, rating=rating)
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO games
                        (game_id, position, rating, current_turn, version, status, created_at)
                    VALUES (?, ?, ?, NULL, ?, ?, ?)
                    """,
                    (
                        record.game_id,
                        record.position,
                        record.rating,
                        record.version,
                        record.status,
                        record.created_at,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"Game already exists: {record.game_id}") from exc
            self._conn.commit()
        return record.game_id

    def get_game(self, game_id: str) -> GameRecord | None:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT game_id, position, rating, current_turn, version, status, created_at
                FROM games WHERE game_id = ?
                """,
                (game_id,),
            ).fetchone()
        return self._from_row(row) if row else None

    def update_game(
        self,
        game_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> GameRecord:
        """Apply a partial update, bumping the version.

        With expected_version the UPDATE is conditioned on the version
        column, so a concurrent writer makes it match zero rows.

        Raises:
            GameNotFoundError: Unknown game id.
            VersionConflictError: expected_version is stale.
        """
        _check_fields(fields)
        assignments = [f"{name} = ?" for name in fields]
        params = [self._to_row_value(name, value) for name, value in fields.items()]
        assignments.append("version = version + 1")
        sql = f"UPDATE games SET {', '.join(assignments)} WHERE game_id = ?"
        params.append(game_id)
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)

        with self._lock:
            cursor = self._conn.execute(sql, params)
            self._conn.commit()
            updated = cursor.rowcount

        if updated == 0:
            current = self.get_game(game_id)
            if current is None:
                raise GameNotFoundError(game_id)
            raise VersionConflictError(game_id, expected_version or 0, current.version)

        record = self.get_game(game_id)
        if record is None:
            raise GameNotFoundError(game_id)
        return record

    def get_position(self, game_id: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT position FROM games WHERE game_id = ?", (game_id,)
            ).fetchone()
        return row[0] if row else None

    def apply_move(
        self, game_id: str, move_code: str, expected_version: int | None = None
    ) -> str | None:
        record = self.get_game(game_id)
        if record is None:
            raise GameNotFoundError(game_id)
        new_position = _apply(record.position, move_code)
        if new_position is None:
            return None
        version = record.version if expected_version is None else expected_version
        self.update_game(game_id, {"position": new_position}, expected_version=version)
        return new_position

    def is_game_over(self, game_id: str) -> bool:
        position = self.get_position(game_id)
        if position is None:
            return True
        return chess.Board(position).is_game_over()

    def side_to_move(self, game_id: str) -> str | None:
        position = self.get_position(game_id)
        return side_of(position) if position is not None else None

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SqliteGameStore":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Version-checked writes
# ---------------------------------------------------------------------------


async def maybe_await(value: Any) -> Any:
    """Resolve a store call that may be synchronous or a coroutine."""
    if inspect.isawaitable(value):
        return await value
    return value


async def store_call(method: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a store method without blocking the event loop.

    Coroutine methods are awaited directly; synchronous ones (both bundled
    stores, sqlite3 included) run in a worker thread. Both stores guard
    their state with a threading.Lock, so this is safe.
    """
    if inspect.iscoroutinefunction(method):
        return await method(*args, **kwargs)
    return await asyncio.to_thread(method, *args, **kwargs)


async def checked_update(
    store: Any,
    record: GameRecord,
    fields: dict[str, Any],
    retries: int = 3,
) -> GameRecord:
    """Write fields conditioned on the record's version, retrying benign conflicts.

    A conflict where the stored position still equals record.position
    was caused by a turn-package write, so the write is retried against
    the fresh version. A conflict where the position moved means another
    move landed first.

    Args:
        store: Position store (sync or async).
        record: The record the caller read; its version is the expected one.
        fields: Fields to write.
        retries: Number of re-reads after a benign conflict.

    Returns:
        The updated record.

    Raises:
        ConcurrentMoveError: The position changed underneath the caller,
            or the retry budget ran out.
        GameNotFoundError: The game disappeared.
    """
    expected = record.version
    for _ in range(retries + 1):
        try:
            return await store_call(
                store.update_game, record.game_id, fields, expected_version=expected
            )
        except VersionConflictError:
            current = await store_call(store.get_game, record.game_id)
            if current is None:
                raise GameNotFoundError(record.game_id) from None
            if current.position != record.position:
                raise ConcurrentMoveError(
                    f"Position of game {record.game_id} changed during the update"
                ) from None
            expected = current.version
    raise ConcurrentMoveError(
        f"Gave up writing game {record.game_id} after {retries} retries"
    )

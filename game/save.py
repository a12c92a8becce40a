"""Save/load management for city games.

The turn engine never touches storage directly; it talks to a ``StateStore``.
Two implementations ship here:

``FileStateStore``   — one JSON file per game in a ``saves/`` directory at the
                       project root, plus an ``index.json`` listing game ids in
                       the order they were first saved.
``MemoryStateStore`` — the same contract over a dict, for tests and for
                       sessions that should not touch the disk.

Both serialise the whole ``GameState`` on every save, so a save is atomic at
the granularity of one snapshot.  Loading is forgiving: a missing, unparseable
or invalid save reads as ``None`` and the caller starts a fresh game.

Public API
----------
store.save(game_id, state)  -> bool
store.load(game_id)         -> GameState | None
store.delete(game_id)       -> None
store.list_ids()            -> list[str]
new_game_id()               -> str
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple, Protocol
from uuid import uuid4

from pydantic import ValidationError

from game.state import Civilization, GameState

logger = logging.getLogger(__name__)

# Saves directory: sits next to the project root (relative to this file's
# parent-parent so it works regardless of CWD).
_SAVES_DIR = Path(__file__).parent.parent / "saves"

_INDEX_FILE = "index.json"

SAVE_VERSION = 1  # bump if the format changes


# ── Save Metadata ────────────────────────────────────────────────────────────


class SaveMeta(NamedTuple):
    """Lightweight summary of a saved game shown on the title screen."""

    game_id: str
    civilization: str
    turn: int
    year: int
    saved_at: str   # ISO-8601 string (UTC)
    game_over: bool


# ── Helpers ──────────────────────────────────────────────────────────────────


def new_game_id() -> str:
    return uuid4().hex[:12]


def dump_state(state: GameState) -> dict:
    """Serialise ``state`` into the on-disk save envelope."""
    return {
        "save_version": SAVE_VERSION,
        "saved_at": datetime.now(tz=timezone.utc).isoformat(),
        "state": state.model_dump(mode="json"),
    }


def restore_state(data: object) -> GameState | None:
    """Rebuild a ``GameState`` from a save envelope, or None if it is unusable.

    Unknown civilization names fall back to Rome, and a phase that was
    mid-flight when the game was saved is normalised to ``idle``.  A
    civilization that is not a string at all marks the save as corrupt.
    """
    if not isinstance(data, dict):
        return None
    raw = data.get("state")
    if not isinstance(raw, dict) or not isinstance(raw.get("turn"), int):
        return None

    raw = dict(raw)
    civilization = raw.get("civilization")
    if civilization is not None and not isinstance(civilization, str):
        return None
    valid_civs = {c.value for c in Civilization}
    if civilization not in valid_civs:
        raw["civilization"] = Civilization.ROME.value

    try:
        state = GameState.model_validate(raw)
    except (ValidationError, TypeError, ValueError):
        logger.warning("Discarding invalid saved state", exc_info=True)
        return None
    return state.resumed()


class StateStore(Protocol):
    def save(self, game_id: str, state: GameState) -> bool: ...

    def load(self, game_id: str) -> GameState | None: ...

    def delete(self, game_id: str) -> None: ...

    def list_ids(self) -> list[str]: ...


# ── MemoryStateStore ─────────────────────────────────────────────────────────


class MemoryStateStore:
    """In-process store that keeps serialised snapshots, like the file store."""

    def __init__(self) -> None:
        self._saves: dict[str, str] = {}
        self._ids: list[str] = []

    def save(self, game_id: str, state: GameState) -> bool:
        self._saves[game_id] = json.dumps(dump_state(state))
        if game_id not in self._ids:
            self._ids.append(game_id)
        return True

    def load(self, game_id: str) -> GameState | None:
        raw = self._saves.get(game_id)
        if raw is None:
            return None
        try:
            return restore_state(json.loads(raw))
        except json.JSONDecodeError:
            return None

    def delete(self, game_id: str) -> None:
        self._saves.pop(game_id, None)
        if game_id in self._ids:
            self._ids.remove(game_id)

    def list_ids(self) -> list[str]:
        return list(self._ids)


# ── FileStateStore ───────────────────────────────────────────────────────────


class FileStateStore:
    """JSON files on disk, one per game, plus an insertion-ordered id index."""

    def __init__(self, directory: Path | None = None) -> None:
        override = os.getenv("CITY_SAVES_DIR")
        self.directory = directory or (Path(override) if override else _SAVES_DIR)

    def _dir(self) -> Path:
        """Return (and create) the saves directory."""
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory

    def _path(self, game_id: str) -> Path:
        return self._dir() / f"{game_id}.json"

    def save(self, game_id: str, state: GameState) -> bool:
        """Write (or overwrite) the save for ``game_id``.

        Storage errors are logged and reported as ``False``; the game keeps
        running in memory.
        """
        try:
            _write_atomic(
                self._path(game_id),
                json.dumps(dump_state(state), ensure_ascii=False),
            )
            ids = self.list_ids()
            if game_id not in ids:
                self._write_index([*ids, game_id])
        except OSError:
            logger.warning("Could not save game %s", game_id, exc_info=True)
            return False
        return True

    def load(self, game_id: str) -> GameState | None:
        try:
            data = json.loads(self._path(game_id).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            logger.warning("Could not read save for game %s", game_id, exc_info=True)
            return None
        return restore_state(data)

    def delete(self, game_id: str) -> None:
        """Delete the save for ``game_id`` (no-op if missing).

        Storage errors are logged; the caller carries on either way.
        """
        try:
            self._path(game_id).unlink(missing_ok=True)
            ids = [i for i in self.list_ids() if i != game_id]
            index = self._dir() / _INDEX_FILE
            if ids:
                self._write_index(ids)
            else:
                index.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not delete game %s", game_id, exc_info=True)

    def list_ids(self) -> list[str]:
        try:
            ids = json.loads((self._dir() / _INDEX_FILE).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        if not isinstance(ids, list):
            return []
        return [i for i in ids if isinstance(i, str)]

    def list_saves(self) -> list[SaveMeta]:
        """Return metadata for every indexed save, newest first."""
        metas: list[SaveMeta] = []
        for game_id in self.list_ids():
            try:
                data = json.loads(self._path(game_id).read_text(encoding="utf-8"))
                state = data.get("state", {})
                metas.append(
                    SaveMeta(
                        game_id=game_id,
                        civilization=state.get("civilization", Civilization.ROME.value),
                        turn=state.get("turn", 0),
                        year=state.get("year", 0),
                        saved_at=data.get("saved_at", ""),
                        game_over=bool(state.get("game_over", False)),
                    )
                )
            except (OSError, json.JSONDecodeError, AttributeError):
                # Corrupt or missing file
                continue

        metas.sort(key=lambda m: m.saved_at, reverse=True)
        return metas

    def _write_index(self, ids: list[str]) -> None:
        _write_atomic(self._dir() / _INDEX_FILE, json.dumps(ids))


def _write_atomic(path: Path, text: str) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)

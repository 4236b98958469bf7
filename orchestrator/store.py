"""In-memory shot store: the authoritative lifecycle record of every shot."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Sequence

from core import NeighborShotContext, Shot, ShotStatus
from utils.exceptions import InvalidTransitionError, ShotNotFoundError


logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[ShotStatus, frozenset] = {
    ShotStatus.PENDING: frozenset({ShotStatus.GENERATING}),
    ShotStatus.GENERATING: frozenset({ShotStatus.CODE_READY, ShotStatus.ERROR}),
    ShotStatus.CODE_READY: frozenset({ShotStatus.RENDERING, ShotStatus.GENERATING}),
    ShotStatus.RENDERING: frozenset({ShotStatus.COMPLETE, ShotStatus.ERROR}),
    ShotStatus.ERROR: frozenset({ShotStatus.GENERATING, ShotStatus.RENDERING, ShotStatus.ERROR}),
    ShotStatus.COMPLETE: frozenset({ShotStatus.GENERATING, ShotStatus.RENDERING}),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShotLifecycleStore:
    """Thread-safe store for shots, their transitions and auto-fix retry counters."""

    def __init__(self, shots: Optional[Iterable[Shot]] = None) -> None:
        self._shots: List[Shot] = []
        self._retries: Dict[str, int] = {}
        self._events: Dict[str, List[Dict[str, str]]] = {}
        self._lock = Lock()
        if shots is not None:
            self.replace_all(shots)

    # ------------------------------------------------------------------
    # Bulk / structural operations
    # ------------------------------------------------------------------

    def replace_all(self, shots: Iterable[Shot]) -> List[Shot]:
        """Install a new storyboard; numbering follows list order."""
        with self._lock:
            fresh = [Shot(**{**shot.model_dump(), "shot_number": idx}) for idx, shot in enumerate(shots, start=1)]
            ids = [shot.id for shot in fresh]
            if len(set(ids)) != len(ids):
                raise ValueError("shot ids must be unique")
            self._shots = fresh
            self._retries.clear()
            self._events = {shot.id: [] for shot in fresh}
            return [shot.model_copy(deep=True) for shot in self._shots]

    def remove(self, shot_id: str) -> List[Shot]:
        """Delete a shot and renumber the remaining shots from 1."""
        with self._lock:
            self._index(shot_id)
            remaining = [shot for shot in self._shots if shot.id != shot_id]
            self._shots = self._renumbered(remaining)
            self._retries.pop(shot_id, None)
            self._events.pop(shot_id, None)
            return [shot.model_copy(deep=True) for shot in self._shots]

    def reorder(self, shot_ids: Sequence[str]) -> List[Shot]:
        """Reorder to ``shot_ids`` (a permutation of the current ids) and renumber."""
        with self._lock:
            by_id = {shot.id: shot for shot in self._shots}
            if len(shot_ids) != len(by_id) or set(shot_ids) != set(by_id):
                raise ValueError("reorder requires every current shot id exactly once")
            self._shots = self._renumbered([by_id[shot_id] for shot_id in shot_ids])
            return [shot.model_copy(deep=True) for shot in self._shots]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, shot_id: str) -> Shot:
        with self._lock:
            return self._shots[self._index(shot_id)].model_copy(deep=True)

    def find(self, shot_id: str) -> Optional[Shot]:
        with self._lock:
            for shot in self._shots:
                if shot.id == shot_id:
                    return shot.model_copy(deep=True)
            return None

    def list_shots(self) -> List[Shot]:
        with self._lock:
            return [shot.model_copy(deep=True) for shot in self._shots]

    def __len__(self) -> int:
        with self._lock:
            return len(self._shots)

    def neighbors(self, shot_id: str) -> tuple:
        """(previous, next) neighbor summaries for code generation context."""
        with self._lock:
            idx = self._index(shot_id)
            prev_shot = self._shots[idx - 1] if idx > 0 else None
            next_shot = self._shots[idx + 1] if idx + 1 < len(self._shots) else None
            return self._neighbor(prev_shot), self._neighbor(next_shot)

    def list_events(self, shot_id: str) -> List[Dict[str, str]]:
        with self._lock:
            return [dict(item) for item in self._events.get(shot_id, [])]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update(self, shot_id: str, **changes: Any) -> Shot:
        """Partial update of non-lifecycle fields (description, visuals, narrative)."""
        forbidden = {"id", "shot_number", "status", "code", "video_url", "error"} & set(changes)
        if forbidden:
            raise ValueError(f"use lifecycle transitions to change: {sorted(forbidden)}")
        with self._lock:
            idx = self._index(shot_id)
            self._shots[idx] = Shot(**{**self._shots[idx].model_dump(), **changes})
            return self._shots[idx].model_copy(deep=True)

    def mark_generating(self, shot_id: str) -> Shot:
        return self._transition(shot_id, ShotStatus.GENERATING, error=None, video_url=None)

    def mark_code_ready(self, shot_id: str, code: str) -> Shot:
        if not str(code or "").strip():
            raise ValueError("generated code is empty")
        return self._transition(shot_id, ShotStatus.CODE_READY, code=code, error=None)

    def mark_rendering(self, shot_id: str) -> Shot:
        return self._transition(shot_id, ShotStatus.RENDERING, require_code=True, error=None)

    def mark_rendering_batch(self, shot_ids: Sequence[str]) -> List[Shot]:
        """All-or-nothing: every shot is checked before any of them moves to rendering."""
        if len(set(shot_ids)) != len(shot_ids):
            raise ValueError("shot ids must be unique")
        with self._lock:
            indexes = [self._checked_index(shot_id, ShotStatus.RENDERING, True) for shot_id in shot_ids]
            return [self._apply(idx, ShotStatus.RENDERING, error=None) for idx in indexes]

    def mark_complete(self, shot_id: str, video_url: str) -> Shot:
        return self._transition(shot_id, ShotStatus.COMPLETE, video_url=video_url, error=None)

    def mark_error(self, shot_id: str, error: str) -> Shot:
        message = str(error or "").strip() or "Unknown error"
        return self._transition(shot_id, ShotStatus.ERROR, error=message)

    # ------------------------------------------------------------------
    # Retry state (survives shot mutation, keyed by shot id)
    # ------------------------------------------------------------------

    def retry_count(self, shot_id: str) -> int:
        with self._lock:
            return int(self._retries.get(shot_id, 0))

    def increment_retry(self, shot_id: str) -> int:
        with self._lock:
            self._index(shot_id)
            value = int(self._retries.get(shot_id, 0)) + 1
            self._retries[shot_id] = value
            return value

    def clear_retry(self, shot_id: str) -> None:
        with self._lock:
            self._retries.pop(shot_id, None)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, shot_id: str, target: ShotStatus, *, require_code: bool = False, **changes: Any) -> Shot:
        with self._lock:
            idx = self._checked_index(shot_id, target, require_code)
            return self._apply(idx, target, **changes)

    def _checked_index(self, shot_id: str, target: ShotStatus, require_code: bool) -> int:
        idx = self._index(shot_id)
        current = self._shots[idx]
        if target not in ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(shot_id, current.status.value, target.value)
        if require_code and not current.code:
            raise ValueError(f"shot {shot_id} has no code to render")
        return idx

    def _apply(self, idx: int, target: ShotStatus, **changes: Any) -> Shot:
        current = self._shots[idx]
        updated = Shot(**{**current.model_dump(), **changes, "status": target})
        self._shots[idx] = updated
        self._events.setdefault(current.id, []).append(
            {
                "ts": _utcnow().isoformat(timespec="seconds"),
                "event": target.value,
                "message": str(updated.error or ""),
            }
        )
        logger.debug("shot_transition shot_id=%s %s->%s", current.id, current.status.value, target.value)
        return updated.model_copy(deep=True)

    def _index(self, shot_id: str) -> int:
        for idx, shot in enumerate(self._shots):
            if shot.id == shot_id:
                return idx
        raise ShotNotFoundError(shot_id)

    @staticmethod
    def _renumbered(shots: List[Shot]) -> List[Shot]:
        return [Shot(**{**shot.model_dump(), "shot_number": idx}) for idx, shot in enumerate(shots, start=1)]

    @staticmethod
    def _neighbor(shot: Optional[Shot]) -> Optional[NeighborShotContext]:
        if shot is None:
            return None
        return NeighborShotContext(
            shot_number=shot.shot_number,
            key_message=shot.key_message or "",
            description=shot.description,
        )

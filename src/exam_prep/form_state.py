"""
Multi-step form state with a persisted draft.

``JsonFormStore`` is a tiny JSON-file key/value store used the way a
browser uses localStorage: drafts survive a restart of the app.
``MultiStepForm`` tracks the current step of a wizard, validates a step
before letting the user move past it, and writes the step back to the
store on every change.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from exam_prep.config import get_settings

logger = logging.getLogger(__name__)

StepValidator = Callable[[int], bool]


class JsonFormStore:
    """Key/value store backed by one JSON file. A missing or corrupt file reads as empty."""

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path or get_settings().storage.form_store_path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable form store %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._load().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._dump(data)


class MultiStepForm:
    def __init__(
        self,
        total_steps: int,
        store: JsonFormStore,
        storage_key: str,
        allow_backward: bool = True,
        allow_skip_validation: bool = False,
        validators: Optional[dict[int, StepValidator]] = None,
    ) -> None:
        if total_steps < 1:
            raise ValueError("total_steps must be at least 1")
        self.total_steps = total_steps
        self.store = store
        self.storage_key = storage_key
        self.allow_backward = allow_backward
        self.allow_skip_validation = allow_skip_validation
        self.validators = dict(validators or {})

        saved = store.get(storage_key)
        self._current = saved if isinstance(saved, int) and 1 <= saved <= total_steps else 1

    # ── state ────────────────────────────────────────────────────────────
    @property
    def current_step(self) -> int:
        return self._current

    @property
    def is_first_step(self) -> bool:
        return self._current == 1

    @property
    def is_last_step(self) -> bool:
        return self._current == self.total_steps

    @property
    def progress(self) -> float:
        """Percentage through the wizard: 0 on the first step, 100 on the last."""
        if self.total_steps == 1:
            return 100.0
        return (self._current - 1) / (self.total_steps - 1) * 100

    def step_status(self, step: int) -> str:
        if step < self._current:
            return "completed"
        if step == self._current:
            return "current"
        return "upcoming"

    def validate_step(self, step: int) -> bool:
        validator = self.validators.get(step)
        return validator(step) if validator else True

    # ── navigation ───────────────────────────────────────────────────────
    def _set_step(self, step: int) -> None:
        self._current = step
        self.store.set(self.storage_key, step)

    def go_to_next(self) -> bool:
        if self.is_last_step:
            return False
        if not self.validate_step(self._current):
            logger.debug("Step %d failed validation", self._current)
            return False
        self._set_step(self._current + 1)
        return True

    def go_to_previous(self) -> bool:
        if not self.allow_backward or self.is_first_step:
            return False
        self._set_step(self._current - 1)
        return True

    def go_to_step(self, step: int) -> bool:
        if not 1 <= step <= self.total_steps:
            return False
        if step < self._current and not self.allow_backward:
            return False
        if step > self._current and not self.allow_skip_validation:
            if not all(self.validate_step(s) for s in range(self._current, step)):
                return False
        self._set_step(step)
        return True

    def reset(self) -> None:
        self._current = 1
        self.store.remove(self.storage_key)

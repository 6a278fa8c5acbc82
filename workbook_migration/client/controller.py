from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from ..models.progress_event import ProgressEvent, ProgressPhase
from ..models.results import DryRunResult, MigrationResult
from ..services.migration_service import MigrationService
from ..services.progress import Subscription

"""Client-side migration controller.

State machine: idle -> preview -> importing -> complete, plus an error
overlay orthogonal to the phase. Recovery from an error is a full reset to
idle. The PhaseTracker derives "active step" markers from the sheet/table
names seen on the progress stream (presentation only).
"""

__all__ = [
    "MigrationPhase",
    "StepState",
    "PhaseTracker",
    "MigrationController",
]

logger = logging.getLogger(__name__)


class MigrationPhase(Enum):
    IDLE = "idle"
    PREVIEW = "preview"
    IMPORTING = "importing"
    COMPLETE = "complete"


class StepState(Enum):
    ACTIVE = "active"
    DONE = "done"


@dataclass
class _Step:
    name: str
    state: StepState


class PhaseTracker:
    """First-seen ordering; the latest step is active, earlier ones done."""

    def __init__(self) -> None:
        self._steps: list[_Step] = []

    def observe(self, name: str | None) -> None:
        if not name:
            return
        existing = next((s for s in self._steps if s.name == name), None)
        for step in self._steps:
            step.state = StepState.DONE
        if existing is None:
            self._steps.append(_Step(name=name, state=StepState.ACTIVE))
        else:
            existing.state = StepState.ACTIVE

    def finish(self) -> None:
        for step in self._steps:
            step.state = StepState.DONE

    @property
    def active(self) -> str | None:
        return next((s.name for s in self._steps if s.state is StepState.ACTIVE), None)

    @property
    def steps(self) -> list[tuple[str, StepState]]:
        return [(s.name, s.state) for s in self._steps]

    def reset(self) -> None:
        self._steps.clear()


class MigrationController:
    def __init__(self, service: MigrationService) -> None:
        self.service = service
        self.phase = MigrationPhase.IDLE
        self.error: str | None = None
        self.job_id: str | None = None
        self.file_name: str | None = None
        self.preview: DryRunResult | None = None
        self.result: MigrationResult | None = None
        self.last_event: ProgressEvent | None = None
        self.sheets = PhaseTracker()
        self.tables = PhaseTracker()

    # idle -> preview
    def upload(self, workbook: bytes, file_name: str) -> bool:
        try:
            response = self.service.dry_run(workbook, file_name)
        except Exception as e:
            logger.error(f"dry run failed: {e}")
            self.error = str(e)
            return False
        self.job_id = response.job_id
        self.file_name = response.file_name
        self.preview = response.dry_run
        self.error = None
        self.phase = MigrationPhase.PREVIEW
        return True

    # preview -> importing
    def start_import(self, timeout: float | None = None) -> Subscription | None:
        """Subscribe, then start the import. Returns the subscription on success."""
        if self.phase is not MigrationPhase.PREVIEW or self.job_id is None:
            self.error = f"cannot start import from phase {self.phase.value}"
            return None
        subscription: Subscription | None = None
        try:
            # 開始前に購読 (late subscriber は過去イベントを受け取れない)
            subscription = self.service.subscribe(self.job_id, timeout=timeout)
            self.service.start_import(self.job_id)
        except Exception as e:
            logger.error(f"import start failed: {e}")
            if subscription is not None:
                subscription.close()
            self.error = str(e)
            return None
        self.error = None
        self.phase = MigrationPhase.IMPORTING
        return subscription

    def handle_event(self, event: ProgressEvent) -> None:
        self.last_event = event
        if event.phase is ProgressPhase.COMPLETE:
            self.result = event.result
            self.sheets.finish()
            self.tables.finish()
            self.phase = MigrationPhase.COMPLETE
        elif event.phase is ProgressPhase.ERROR:
            self.error = event.message
        else:
            self.sheets.observe(event.sheet)
            self.tables.observe(event.table)

    def follow(
        self,
        events: Iterable[ProgressEvent],
        on_event: Callable[[ProgressEvent], None] | None = None,
    ) -> MigrationPhase:
        for event in events:
            self.handle_event(event)
            if on_event is not None:
                on_event(event)
        return self.phase

    def dismiss_error(self) -> None:
        self.error = None

    def reset(self) -> None:
        self.phase = MigrationPhase.IDLE
        self.error = None
        self.job_id = None
        self.file_name = None
        self.preview = None
        self.result = None
        self.last_event = None
        self.sheets.reset()
        self.tables.reset()

# src/caprewards/runtime/scheduler.py
from __future__ import annotations

"""Epoch scheduler.

Holds the append-only epoch log and answers time questions against it:

  - active_epoch(t): the epoch whose [start, end) window contains t
  - overlapping(t0, t1): epochs intersecting (t0, t1], in order
  - current_phase(now): Open / Checkpoint / PostCheckpoint / Closed / Distributed
  - epoch_to_distribute(now): earliest ended, undistributed epoch

Epoch ids are sequential from 1 and windows never overlap. Gaps between epochs
are allowed; nothing accrues inside a gap.
"""

import bisect
import logging
from typing import Iterator, List, Optional, Tuple

from caprewards.ledger.types import Epoch, EpochPhase, RewardsState
from caprewards.runtime.errors import AlreadyDistributed, EpochNotEnded, InvalidEpoch
from caprewards.runtime.rewards_logging import log_event

_log = logging.getLogger("caprewards.scheduler")


class EpochScheduler:
    def __init__(self, state: RewardsState) -> None:
        self._state = state

    @property
    def epochs(self) -> List[Epoch]:
        return self._state.epochs

    def get(self, epoch_id: int) -> Optional[Epoch]:
        return self._state.epoch_by_id(epoch_id)

    # ---- configuration ----

    def configure_epoch(
        self,
        *,
        epoch_id: int,
        start: int,
        end: int,
        checkpoint_start: int,
        checkpoint_end: int,
        now: int,
    ) -> Epoch:
        """Append a new epoch or reconfigure one that has not started yet.

        A new epoch may be appended while its window is already running; only
        time from `now` on accrues. Epochs that have already ended are refused.

        Callers must settle global accrual to `now` first.
        """
        epoch_id, start, end = int(epoch_id), int(start), int(end)
        checkpoint_start, checkpoint_end = int(checkpoint_start), int(checkpoint_end)

        if not (start < checkpoint_start < checkpoint_end < end):
            raise InvalidEpoch(
                "malformed_window",
                {
                    "start": start,
                    "checkpoint_start": checkpoint_start,
                    "checkpoint_end": checkpoint_end,
                    "end": end,
                },
            )

        if end <= int(now):
            raise InvalidEpoch("epoch_already_ended", {"end": end, "now": int(now)})

        n = len(self.epochs)
        if epoch_id == n + 1:
            existing = None
        elif 1 <= epoch_id <= n:
            existing = self.epochs[epoch_id - 1]
            if int(now) >= existing.start_time:
                raise InvalidEpoch("epoch_already_started", {"epoch_id": epoch_id})
        else:
            raise InvalidEpoch("non_sequential_id", {"epoch_id": epoch_id, "expected": n + 1})

        prev = self.get(epoch_id - 1)
        if prev is not None and start < prev.end_time:
            raise InvalidEpoch("overlaps_previous", {"epoch_id": epoch_id, "previous_end": prev.end_time})
        nxt = self.get(epoch_id + 1)
        if nxt is not None and end > nxt.start_time:
            raise InvalidEpoch("overlaps_next", {"epoch_id": epoch_id, "next_start": nxt.start_time})

        ep = Epoch(
            id=epoch_id,
            start_time=start,
            end_time=end,
            checkpoint_start=checkpoint_start,
            checkpoint_end=checkpoint_end,
            # Configured mid-window: accrue from now on only.
            accrual_start=max(start, int(now)),
        )
        if existing is None:
            self.epochs.append(ep)
        else:
            self.epochs[epoch_id - 1] = ep

        log_event(
            _log,
            "epoch_configured",
            epoch_id=epoch_id,
            start=start,
            end=end,
            checkpoint_start=checkpoint_start,
            checkpoint_end=checkpoint_end,
            replaced=existing is not None,
            accrual_start=ep.accrual_start,
        )
        return ep

    # ---- lookups ----

    def _first_ending_after(self, t: int) -> int:
        ends = [e.end_time for e in self.epochs]
        return bisect.bisect_right(ends, int(t))

    def active_epoch(self, t: int) -> Optional[Epoch]:
        i = self._first_ending_after(t)
        if i < len(self.epochs) and self.epochs[i].contains(int(t)):
            return self.epochs[i]
        return None

    def overlapping(self, t0: int, t1: int) -> Iterator[Tuple[Epoch, int, int]]:
        """Yield (epoch, seg_start, seg_end) for every non-empty overlap with (t0, t1]."""
        t0, t1 = int(t0), int(t1)
        if t1 <= t0:
            return
        for e in self.epochs[self._first_ending_after(t0):]:
            if e.start_time >= t1:
                break
            s = max(t0, e.accrues_from)
            f = min(t1, e.end_time)
            if f > s:
                yield e, s, f

    def pending_from(self, t0: int, t1: int) -> Iterator[Epoch]:
        """Epochs not fully behind t0 that have started by t1, in order."""
        for e in self.epochs[self._first_ending_after(t0):]:
            if e.start_time > int(t1):
                break
            yield e

    def has_started(self, epoch_id: int, now: int) -> bool:
        e = self.get(epoch_id)
        return e is not None and int(now) >= e.start_time

    def late_entry_epoch(self, now: int) -> Optional[int]:
        """Epoch id a balance increase at `now` must wait for, or None if eligible now."""
        e = self.active_epoch(now)
        if e is not None and e.is_late(now):
            return e.id + 1
        return None

    def entry_epoch(self, now: int) -> int:
        """Epoch id in which a balance arriving at `now` first becomes eligible."""
        late = self.late_entry_epoch(now)
        if late is not None:
            return late
        e = self.active_epoch(now)
        if e is not None:
            return e.id
        for e in self.epochs:
            if e.start_time > int(now):
                return e.id
        return len(self.epochs) + 1

    def current_epoch(self, now: int) -> Optional[Epoch]:
        """Active epoch, else the most recent ended one, else None."""
        e = self.active_epoch(now)
        if e is not None:
            return e
        i = self._first_ending_after(now)
        return self.epochs[i - 1] if i > 0 else None

    def current_phase(self, now: int) -> Optional[EpochPhase]:
        e = self.current_epoch(now)
        return None if e is None else e.phase_at(int(now))

    def epoch_to_distribute(self, now: int) -> Epoch:
        ended = [e for e in self.epochs if int(now) >= e.end_time]
        if not ended:
            nxt = self.current_epoch(now)
            raise EpochNotEnded({"epoch_id": nxt.id if nxt else 0, "now": int(now)})
        for e in ended:
            if not e.distributed:
                return e
        raise AlreadyDistributed(ended[-1].id)

    def any_distributed(self) -> bool:
        return bool(self._state.reports)

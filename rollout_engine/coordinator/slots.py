# rollout_engine/coordinator/slots.py

"""Slot manager for bounding how many executions run at once."""

from threading import Condition
from typing import List, Optional


class Slot:
    """Represents a single execution slot."""

    def __init__(self, slot_id: int):
        self.slot_id = slot_id
        self.execution_id: Optional[str] = None

    def is_free(self) -> bool:
        """Check if slot is available."""
        return self.execution_id is None

    def bind(self, execution_id: str) -> None:
        """Bind execution to this slot."""
        if not self.is_free():
            raise ValueError(f"Slot {self.slot_id} already occupied")
        self.execution_id = execution_id

    def release(self) -> None:
        """Release slot."""
        self.execution_id = None

    def __repr__(self) -> str:
        status = "free" if self.is_free() else f"occupied({self.execution_id})"
        return f"<Slot(id={self.slot_id}, {status})>"


class SlotManager:
    """
    Thread-safe pool of execution slots.

    ``acquire`` blocks until a slot frees up; ``peak`` remembers the highest
    number of slots ever occupied at once.
    """

    def __init__(self, max_slots: int):
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1")

        self._slots = [Slot(i) for i in range(max_slots)]
        self._condition = Condition()
        self._peak = 0

    def try_acquire(self, execution_id: str) -> Optional[Slot]:
        """Bind a free slot if one is available, without waiting."""
        with self._condition:
            return self._bind_free_slot(execution_id)

    def acquire(self, execution_id: str, timeout: Optional[float] = None) -> Optional[Slot]:
        """Wait for a free slot. Returns None only if ``timeout`` elapses."""
        with self._condition:
            slot = self._bind_free_slot(execution_id)
            while slot is None:
                if not self._condition.wait(timeout):
                    return None
                slot = self._bind_free_slot(execution_id)
            return slot

    def _bind_free_slot(self, execution_id: str) -> Optional[Slot]:
        for slot in self._slots:
            if slot.is_free():
                slot.bind(execution_id)
                self._peak = max(self._peak, len(self.active_slots()))
                return slot
        return None

    def release(self, slot: Slot) -> None:
        with self._condition:
            slot.release()
            self._condition.notify()

    def active_slots(self) -> List[Slot]:
        """Get all occupied slots."""
        return [s for s in self._slots if not s.is_free()]

    def find_slot_by_execution(self, execution_id: str) -> Optional[Slot]:
        """Find slot containing given execution."""
        for slot in self._slots:
            if slot.execution_id == execution_id:
                return slot
        return None

    def total_slots(self) -> int:
        """Get total number of slots."""
        return len(self._slots)

    def free_slots(self) -> int:
        """Get number of free slots."""
        return sum(1 for s in self._slots if s.is_free())

    @property
    def peak(self) -> int:
        return self._peak

    def __repr__(self) -> str:
        return (
            f"<SlotManager(total={self.total_slots()}, "
            f"free={self.free_slots()}, "
            f"active={len(self.active_slots())})>"
        )

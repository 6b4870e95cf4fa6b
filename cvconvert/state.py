"""Runtime state shared between the note stacks, CV and gate outputs."""

from __future__ import annotations

from dataclasses import dataclass, field

from .constants import NO_NOTE_OUT, NUM_STACK_OUTPUTS


@dataclass
class OutputBus:
    """Pending DAC and gate shift-register data."""

    cv_dac_pending: bool = False
    sr_data: int = 0
    sr_retrigs: int = 0
    sr_data_pending: bool = False
    sync_sr_data: int = 0
    sync_sr_data_pending: bool = False

    def release_synced_gates(self):
        """Apply gates deferred until the CV update; return True if any were."""
        if not self.sync_sr_data_pending:
            return False
        self.sr_data |= self.sync_sr_data
        self.sync_sr_data = 0
        self.sync_sr_data_pending = False
        self.sr_data_pending = True
        return True


def _no_notes():
    return [NO_NOTE_OUT] * NUM_STACK_OUTPUTS


@dataclass
class NoteStackState:
    """Held notes and output notes of one note stack."""

    notes: list = field(default_factory=list)
    out: list = field(default_factory=_no_notes)
    bend: int = 0
    vel: int = 0
    index: int = 0

    @property
    def count(self):
        """Number of notes currently held."""
        return len(self.notes)

    def clear(self):
        """Forget all held notes, outputs, bend and velocity."""
        self.notes.clear()
        self.out = _no_notes()
        self.bend = 0
        self.vel = 0
        self.index = 0
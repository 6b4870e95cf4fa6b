"""Global configuration: default MIDI channel and gate duration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional

from .constants import DEFAULT_GATE_DURATION, DEFAULT_MIDI_CHANNEL, DurationValue, NrpnLow


@dataclass
class GlobalConfig:
    """Device-wide settings, configurable over NRPN and stored in a patch."""

    chan: int = DEFAULT_MIDI_CHANNEL
    gate_duration: int = DEFAULT_GATE_DURATION
    on_save: Optional[Callable[[], None]] = field(default=None, compare=False, repr=False)

    SIZE = 2

    def nrpn(self, param_lo, value_hi, value_lo):
        """Apply an NRPN setting; return True if it was accepted."""
        if param_lo == NrpnLow.CHAN:
            # every channel mode is treated as a specific channel here
            if 1 <= value_lo <= 16:
                self.chan = value_lo - 1
                return True
            return False
        if param_lo == NrpnLow.GATE_DUR:
            if value_hi == DurationValue.MS:
                self.gate_duration = value_lo
                return True
            return False
        if param_lo == NrpnLow.SAVE:
            if self.on_save is not None:
                self.on_save()
            return True
        return False

    def to_bytes(self):
        """Serialise the settings into their patch representation."""
        return bytes((self.chan & 0xFF, self.gate_duration & 0xFF))

    def load(self, data):
        """Restore the settings from their patch representation."""
        data = bytes(data)
        if len(data) != self.SIZE:
            raise ValueError(f"global settings need {self.SIZE} bytes, got {len(data)}")
        self.chan, self.gate_duration = data
"""Note stacks: assign held MIDI notes to up to four outputs per stack."""

from __future__ import annotations

from dataclasses import dataclass

from .constants import (
    NO_NOTE_OUT,
    NUM_NOTE_STACKS,
    NUM_STACK_OUTPUTS,
    SZ_NOTE_STACK,
    Channel,
    ChannelValue,
    Event,
    NrpnLow,
    Priority,
    is_chan,
    is_note_match,
)
from .state import NoteStackState

_BEND_CENTRE = 8192
_PRIORITY_MODES = (Priority.LAST, Priority.LOW, Priority.HIGH)


def _div(num, den):
    """Integer division truncating toward zero."""
    quotient = abs(num) // abs(den)
    return quotient if (num >= 0) == (den >= 0) else -quotient


def _int16(value):
    """Wrap to a signed 16-bit integer."""
    return ((value + 0x8000) & 0xFFFF) - 0x8000


@dataclass
class StackConfig:
    """Six-byte configuration of one note stack."""

    chan: int = 0
    note_min: int = 0
    note_max: int = 0
    vel_min: int = 0
    bend_range: int = 0
    priority: int = Priority.LAST

    SIZE = 6

    def __bytes__(self):
        return bytes(
            value & 0xFF
            for value in (
                self.chan,
                self.note_min,
                self.note_max,
                self.vel_min,
                self.bend_range,
                self.priority,
            )
        )

    @classmethod
    def from_bytes(cls, data):
        """Build a configuration from its six-byte patch representation."""
        data = bytes(data)
        if len(data) != cls.SIZE:
            raise ValueError(f"stack config needs {cls.SIZE} bytes, got {len(data)}")
        return cls(*data)


class NoteStacks:
    """The four note stacks, which feed note events to CV and gate outputs."""

    def __init__(self, settings, cv, gates):
        self.settings = settings
        self.cv = cv
        self.gates = gates
        self.configs = []
        self.states = [NoteStackState() for _ in range(NUM_NOTE_STACKS)]
        self.init()

    def init(self):
        """Clear the configuration of every stack."""
        self.configs = [StackConfig() for _ in range(NUM_NOTE_STACKS)]

    @staticmethod
    def _update_held_notes(stack, note, vel, priority):
        notes = stack.notes
        if vel:
            pos = len(notes)
            for index, held in enumerate(notes):
                if (
                    priority == Priority.LAST
                    or (priority == Priority.HIGH and note > held)
                    or (priority == Priority.LOW and note < held)
                ):
                    pos = index
                    break
            if len(notes) < SZ_NOTE_STACK:
                notes.insert(pos, note)
            elif pos < SZ_NOTE_STACK:
                # a full stack drops its lowest-priority note
                notes.insert(pos, note)
                notes.pop()
        elif note in notes:
            notes.remove(note)

    def _prioritize(self, stack, which, priority, note, vel):
        self._update_held_notes(stack, note, vel, priority)
        prev_out = stack.out[0]
        if not stack.notes:
            if prev_out != NO_NOTE_OUT:
                stack.out[0] = NO_NOTE_OUT
                self.gates.event(Event.NO_NOTE_A, which)
                self.gates.event(Event.NOTES_OFF, which)
        elif prev_out != stack.notes[0]:
            stack.out[0] = stack.notes[0]
            self.cv.event(Event.NOTE_A, which, stack)
            self.gates.event(Event.NOTE_A, which)
            if prev_out == NO_NOTE_OUT:
                self.gates.event(Event.NOTE_ON, which)

    def _release_outputs(self, stack, which, note):
        any_note = False
        for index in range(NUM_STACK_OUTPUTS):
            if stack.out[index] == note:
                stack.out[index] = NO_NOTE_OUT
                self.gates.event(Event(Event.NO_NOTE_A + index), which)
            elif stack.out[index] != NO_NOTE_OUT:
                any_note = True
        if not any_note:
            self.gates.event(Event.NOTES_OFF, which)

    def _cycle(self, stack, which, cycle_size, note, vel):
        if vel:
            index = stack.index
            stack.out[index] = note
            self.cv.event(Event(Event.NOTE_A + index), which, stack)
            self.gates.event(Event(Event.NOTE_A + index), which)
            self.gates.event(Event.NOTE_ON, which)
            stack.index = index + 1 if index + 1 < cycle_size else 0
        else:
            self._release_outputs(stack, which, note)

    def _para_chord(self, stack, which, chord_size, note, vel):
        self._update_held_notes(stack, note, vel, Priority.LOW)
        if vel:
            notes = stack.notes
            for index in range(chord_size):
                held = notes[index % len(notes)]
                if held != stack.out[index]:
                    stack.out[index] = held
                    self.cv.event(Event(Event.NOTE_A + index), which, stack)
            if stack.count <= chord_size:
                self.gates.event(Event.NOTE_ON, which)
            if stack.count == 1:
                self.gates.event(Event.NOTE_A, which)
        elif not stack.notes:
            self.gates.event(Event.NO_NOTE_A, which)
            self.gates.event(Event.NOTES_OFF, which)

    def midi_note(self, chan, note, vel):
        """Handle a MIDI note; zero velocity is a note off."""
        for which, (cfg, stack) in enumerate(zip(self.configs, self.states)):
            if not is_chan(cfg.chan, chan, self.settings.chan):
                continue
            if not is_note_match(cfg.note_min, cfg.note_max, note):
                continue
            if vel:
                if cfg.vel_min and vel < cfg.vel_min:
                    continue
                stack.vel = vel
            priority = cfg.priority
            if priority in _PRIORITY_MODES:
                self._prioritize(stack, which, priority, note, vel)
            elif Priority.CYCLE2 <= priority <= Priority.CYCLE4:
                self._cycle(stack, which, 2 + priority - Priority.CYCLE2, note, vel)
            elif Priority.CHORD2 <= priority <= Priority.CHORD4:
                self._para_chord(stack, which, 2 + priority - Priority.CHORD2, note, vel)

    def midi_bend(self, chan, bend):
        """Handle a raw 14-bit pitch bend; stack bend is in 1/256 semitones."""
        for which, (cfg, stack) in enumerate(zip(self.configs, self.states)):
            if not is_chan(cfg.chan, chan, self.settings.chan):
                continue
            new_bend = _int16(_div(cfg.bend_range * (bend - _BEND_CENTRE), 32))
            if stack.bend != new_bend:
                stack.bend = new_bend
                self.cv.event(Event.BEND, which, stack)

    def nrpn(self, which_stack, param_lo, value_hi, value_lo):
        """Apply an NRPN setting to a stack; return True if it was accepted."""
        if not 0 <= which_stack < NUM_NOTE_STACKS:
            return False
        cfg = self.configs[which_stack]
        value = value_lo & 0xFF

        if param_lo == NrpnLow.CHAN:
            if value_hi == ChannelValue.OMNI:
                cfg.chan = Channel.OMNI
                return True
            if value_hi == ChannelValue.GLOBAL:
                cfg.chan = Channel.GLOBAL
                return True
            if 1 <= value_lo <= 16:
                cfg.chan = value_lo - 1
                return True
            return False
        if param_lo == NrpnLow.NOTE_MIN:
            cfg.note_min = value
            return True
        if param_lo == NrpnLow.NOTE_MAX:
            cfg.note_max = value
            return True
        if param_lo == NrpnLow.VEL_MIN:
            cfg.vel_min = value
            return True
        if param_lo == NrpnLow.PB_RANGE:
            cfg.bend_range = value
            return True
        if param_lo == NrpnLow.PRIORITY:
            if value_lo < Priority.MAX:
                cfg.priority = value
                return True
            return False
        return False

    def reset(self):
        """Release every held note and tell the gates that all notes are off."""
        for which, stack in enumerate(self.states):
            stack.clear()
            self.gates.event(Event.NOTES_OFF, which)

    def to_bytes(self):
        """Serialise the stack configuration into its patch representation."""
        return b"".join(bytes(cfg) for cfg in self.configs)

    def load(self, data):
        """Restore the stack configuration from its patch representation."""
        data = bytes(data)
        size = StackConfig.SIZE * NUM_NOTE_STACKS
        if len(data) != size:
            raise ValueError(f"stack settings need {size} bytes, got {len(data)}")
        self.configs = [
            StackConfig.from_bytes(data[offset:offset + StackConfig.SIZE])
            for offset in range(0, size, StackConfig.SIZE)
        ]
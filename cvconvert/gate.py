"""Gate outputs driven by note stacks, raw MIDI notes, CCs and MIDI clock."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .constants import (
    DEFAULT_GATE_CC_THRESHOLD,
    DEFAULT_GATE_DIV,
    DEFAULT_GATE_DURATION,
    GATE_DUR_GLOBAL,
    GATE_DUR_INFINITE,
    GATE_MAX,
    MIDI_SYNCH_CONTINUE,
    MIDI_SYNCH_START,
    MIDI_SYNCH_STOP,
    MIDI_SYNCH_TICK,
    Channel,
    ChannelValue,
    DurationValue,
    Event,
    NrpnLow,
    SourceNote,
    SourceValue,
    is_chan,
    is_note_match,
)

# Shift register bit driven by each gate output
_GATE_BITS = (
    0x0004, 0x0008, 0x0002, 0x0001,
    0x0100, 0x0200, 0x0400, 0x0800,
    0x1000, 0x2000, 0x4000, 0x8000,
)

# Initial "last CC value" meaning nothing has been received yet
_NO_VALUE = 0xFF

_FLAG_RETRIG = 0x01


class GateMode(IntEnum):
    """What a gate output responds to."""

    DISABLE = 0
    MIDI_NOTE = SourceValue.MIDINOTE
    MIDI_CC = SourceValue.MIDICC
    MIDI_CC_NEG = SourceValue.MIDICC_NEG
    CLOCK_TICK = SourceValue.MIDITICK
    CLOCK_RUN_TICK = SourceValue.MIDITICKRUN
    CLOCK_RUN = SourceValue.MIDIRUN
    CLOCK_START = SourceValue.MIDISTART
    CLOCK_STOP = SourceValue.MIDISTOP
    CLOCK_STARTSTOP = SourceValue.MIDISTARTSTOP
    NOTE_EVENT_BASE = 128
    NOTE_ON = 129
    NOTES_OFF = 130
    NOTE_GATEA = 131
    NOTE_GATEB = 132
    NOTE_GATEC = 133
    NOTE_GATED = 134


# For stack-driven modes: (event that opens the gate, event that closes it)
_STACK_MODE_EVENTS = {
    GateMode.NOTE_ON: (Event.NOTE_ON, Event.NOTES_OFF),
    GateMode.NOTES_OFF: (Event.NOTES_OFF, Event.NOTE_ON),
    GateMode.NOTE_GATEA: (Event.NOTE_A, Event.NO_NOTE_A),
    GateMode.NOTE_GATEB: (Event.NOTE_B, Event.NO_NOTE_B),
    GateMode.NOTE_GATEC: (Event.NOTE_C, Event.NO_NOTE_C),
    GateMode.NOTE_GATED: (Event.NOTE_D, Event.NO_NOTE_D),
}

_CLOCK_TICK_MODES = (GateMode.CLOCK_TICK, GateMode.CLOCK_RUN_TICK)
_CLOCK_SOURCES = (
    SourceValue.MIDITICK,
    SourceValue.MIDITICKRUN,
    SourceValue.MIDIRUN,
    SourceValue.MIDISTART,
    SourceValue.MIDISTOP,
    SourceValue.MIDISTARTSTOP,
)
_STACK_SOURCES = (
    SourceValue.STACK1,
    SourceValue.STACK2,
    SourceValue.STACK3,
    SourceValue.STACK4,
)


def _byte_field(offset, doc):
    def getter(self):
        return self._raw[offset]

    def setter(self, value):
        self._raw[offset] = value & 0xFF

    return property(getter, setter, doc=doc)


class GateConfig:
    """Seven-byte gate configuration record.

    Different modes read the same bytes under different names, so setting
    ``chan`` also changes ``stack_id`` and ``div``, as in a stored patch.
    """

    SIZE = 7
    __slots__ = ("_raw",)

    def __init__(self, raw=None):
        raw = bytearray(self.SIZE if raw is None else raw)
        if len(raw) != self.SIZE:
            raise ValueError(f"gate config needs {self.SIZE} bytes, got {len(raw)}")
        self._raw = raw

    mode = _byte_field(0, "Gate mode (a GateMode value).")
    flags = _byte_field(1, "Option flags.")
    duration = _byte_field(2, "Pulse length in ms, 0 for latched, 0x80 for global.")
    stack_id = _byte_field(3, "Note stack watched by stack-driven modes.")
    chan = _byte_field(3, "MIDI channel for note and CC modes.")
    div = _byte_field(3, "Clock divider at 24 ppqn.")
    note = _byte_field(4, "Lowest (or only) matching note.")
    cc = _byte_field(4, "Controller number.")
    tick_ofs = _byte_field(4, "Clock count loaded on start.")
    note_max = _byte_field(5, "Highest matching note, 0 for a single note.")
    threshold = _byte_field(5, "CC value at which the gate switches.")
    vel_min = _byte_field(6, "Minimum note-on velocity.")

    @property
    def retrig(self):
        """Whether the gate is pulsed low before each new trigger."""
        return bool(self.flags & _FLAG_RETRIG)

    def __bytes__(self):
        return bytes(self._raw)

    def __eq__(self, other):
        if not isinstance(other, GateConfig):
            return NotImplemented
        return self._raw == other._raw

    def __repr__(self):
        return f"GateConfig({bytes(self._raw)!r})"


@dataclass
class _GateState:
    counter: int = 0
    value: int = _NO_VALUE


class Gates:
    """The twelve gate outputs and their configuration."""

    def __init__(self, bus, settings):
        self.bus = bus
        self.settings = settings
        self.clock_running = False
        self.configs = [GateConfig() for _ in range(GATE_MAX)]
        self.states = [_GateState() for _ in range(GATE_MAX)]
        self.init()

    def init(self):
        """Load the default configuration and reset every gate."""
        for cfg in self.configs:
            cfg.mode = GateMode.DISABLE
            cfg.flags = 0
            cfg.duration = DEFAULT_GATE_DURATION
        self.reset()

    def _trigger(self, which_gate, enabled, sync):
        bit = _GATE_BITS[which_gate]
        cfg = self.configs[which_gate]
        state = self.states[which_gate]
        bus = self.bus
        if enabled:
            if cfg.retrig:
                bus.sr_retrigs |= bit
            if sync and bus.cv_dac_pending:
                # open the gate only once the CV has reached the DAC
                if not bus.sync_sr_data & bit:
                    bus.sync_sr_data |= bit
                    bus.sync_sr_data_pending = True
            elif cfg.retrig or not bus.sr_data & bit:
                bus.sr_data |= bit
                bus.sr_data_pending = True
            if cfg.duration == GATE_DUR_GLOBAL:
                counter = self.settings.gate_duration & 0xFF
            else:
                counter = cfg.duration
            # one extra count since the next tick decrements immediately
            state.counter = (counter + 1) & 0xFF if counter else 0
        else:
            bus.sync_sr_data &= ~bit
            if bus.sr_data & bit:
                bus.sr_data &= ~bit
                bus.sr_data_pending = True
            state.counter = 0

    def event(self, event, stack_id):
        """Handle an event from note stack ``stack_id``."""
        for which_gate, cfg in enumerate(self.configs):
            if cfg.stack_id != stack_id:
                continue
            events = _STACK_MODE_EVENTS.get(cfg.mode)
            if events is None:
                continue
            on_event, off_event = events
            if event == on_event:
                self._trigger(which_gate, True, True)
            elif event == off_event:
                self._trigger(which_gate, False, False)

    def midi_note(self, chan, note, vel):
        """Handle a raw MIDI note; zero velocity is a note off."""
        for which_gate, cfg in enumerate(self.configs):
            if cfg.mode != GateMode.MIDI_NOTE:
                continue
            if not is_chan(cfg.chan, chan, self.settings.chan):
                continue
            if not is_note_match(cfg.note, cfg.note_max, note):
                continue
            if vel and vel < cfg.vel_min:
                continue
            self._trigger(which_gate, bool(vel), False)

    def midi_cc(self, chan, cc, value):
        """Handle a raw MIDI controller change."""
        for which_gate, cfg in enumerate(self.configs):
            if cfg.mode not in (GateMode.MIDI_CC, GateMode.MIDI_CC_NEG):
                continue
            if cc != cfg.cc:
                continue
            if not is_chan(cfg.chan, chan, self.settings.chan):
                continue
            state = self.states[which_gate]
            negative = cfg.mode == GateMode.MIDI_CC_NEG
            threshold = cfg.threshold
            if value >= threshold and (state.value < threshold or state.value == _NO_VALUE):
                self._trigger(which_gate, not negative, False)
                state.value = value & 0xFF
            elif value < threshold and (state.value >= threshold or state.value == _NO_VALUE):
                self._trigger(which_gate, negative, False)
                state.value = value & 0xFF

    def midi_clock(self, msg):
        """Handle a MIDI realtime clock, start, continue or stop message."""
        if msg == MIDI_SYNCH_TICK:
            for which_gate, cfg in enumerate(self.configs):
                if cfg.mode not in _CLOCK_TICK_MODES:
                    continue
                if cfg.mode == GateMode.CLOCK_RUN_TICK and not self.clock_running:
                    continue
                state = self.states[which_gate]
                if not state.value:
                    self._trigger(which_gate, True, False)
                state.value = (state.value + 1) & 0xFF
                if state.value >= cfg.div:
                    state.value = 0
        elif msg in (MIDI_SYNCH_START, MIDI_SYNCH_CONTINUE):
            self.clock_running = True
            starting = msg == MIDI_SYNCH_START
            for which_gate, cfg in enumerate(self.configs):
                mode = cfg.mode
                if mode in _CLOCK_TICK_MODES:
                    if starting:
                        self.states[which_gate].value = cfg.tick_ofs
                elif mode in (GateMode.CLOCK_STARTSTOP, GateMode.CLOCK_RUN) or (
                    mode == GateMode.CLOCK_START and starting
                ):
                    self._trigger(which_gate, True, False)
                elif mode == GateMode.CLOCK_STOP:
                    self._trigger(which_gate, False, False)
        elif msg == MIDI_SYNCH_STOP:
            self.clock_running = False
            for which_gate, cfg in enumerate(self.configs):
                if cfg.mode == GateMode.CLOCK_RUN:
                    self._trigger(which_gate, False, False)
                elif cfg.mode in (GateMode.CLOCK_STOP, GateMode.CLOCK_STARTSTOP):
                    self._trigger(which_gate, True, False)

    def run(self):
        """Advance gate timers by one millisecond, closing expired gates."""
        for which_gate, state in enumerate(self.states):
            if state.counter:
                state.counter -= 1
                if not state.counter:
                    self._trigger(which_gate, False, False)

    def trigger(self, which_gate, enabled):
        """Open or close a gate directly; out-of-range gates are ignored."""
        if 0 <= which_gate < GATE_MAX:
            self._trigger(which_gate, bool(enabled), False)

    def reset(self):
        """Close every gate and restore its counters."""
        for which_gate, (cfg, state) in enumerate(zip(self.configs, self.states)):
            state.counter = 0
            state.value = cfg.tick_ofs if cfg.mode in _CLOCK_TICK_MODES else _NO_VALUE
            self._trigger(which_gate, False, False)

    def nrpn(self, which_gate, param_lo, value_hi, value_lo):
        """Apply an NRPN setting to a gate; return True if it was accepted."""
        if not 0 <= which_gate < GATE_MAX:
            return False
        cfg = self.configs[which_gate]

        if param_lo == NrpnLow.SRC:
            return self._select_source(cfg, value_hi, value_lo)

        if param_lo == NrpnLow.CHAN:
            if value_hi == ChannelValue.SPECIFIC:
                if 1 <= value_lo <= 16:
                    cfg.chan = value_lo - 1
                    return True
                return False
            if value_hi == ChannelValue.OMNI:
                cfg.chan = Channel.OMNI
                return True
            if value_hi == ChannelValue.GLOBAL:
                cfg.chan = Channel.GLOBAL
                return True
            return False

        if param_lo == NrpnLow.NOTE_MIN:
            cfg.note = value_lo
            cfg.note_max = 0
            return True
        if param_lo == NrpnLow.NOTE_MAX:
            cfg.note_max = value_lo
            return True
        if param_lo == NrpnLow.VEL_MIN:
            cfg.vel_min = value_lo
            return True
        if param_lo == NrpnLow.THRESHOLD:
            cfg.threshold = value_lo
            return True

        if param_lo == NrpnLow.GATE_DUR:
            if value_hi == DurationValue.MS:
                cfg.duration = value_lo
            elif value_hi == DurationValue.INF:
                cfg.duration = GATE_DUR_INFINITE
            elif value_hi == DurationValue.GLOBAL:
                cfg.duration = GATE_DUR_GLOBAL
            elif value_hi == DurationValue.RETRIG:
                cfg.duration = GATE_DUR_INFINITE
                cfg.flags |= _FLAG_RETRIG
            else:
                return False
            return True

        if param_lo == NrpnLow.TICK_OFS:
            cfg.tick_ofs = value_lo
            return True
        return False

    @staticmethod
    def _select_source(cfg, value_hi, value_lo):
        if value_hi == SourceValue.DISABLE:
            cfg.mode = GateMode.DISABLE
            return True

        if value_hi in _STACK_SOURCES:
            cfg.stack_id = value_hi - SourceValue.STACK1
            cfg.duration = GATE_DUR_GLOBAL
            cfg.flags = 0
            if SourceNote.NOTE1 <= value_lo <= SourceNote.NOTE4:
                cfg.mode = GateMode.NOTE_GATEA + (value_lo - SourceNote.NOTE1)
                return True
            if value_lo == SourceNote.NO_NOTES:
                cfg.mode = GateMode.NOTES_OFF
                return True
            if value_lo == SourceNote.ANY_NOTES:
                cfg.mode = GateMode.NOTE_ON
                return True
            return False

        if value_hi == SourceValue.MIDINOTE:
            cfg.mode = GateMode.MIDI_NOTE
            cfg.chan = Channel.GLOBAL
            cfg.note = value_lo
            cfg.note_max = 0
            cfg.vel_min = 0
            return True

        if value_hi in (SourceValue.MIDICC, SourceValue.MIDICC_NEG):
            cfg.mode = value_hi
            cfg.chan = Channel.GLOBAL
            cfg.cc = value_lo
            cfg.threshold = DEFAULT_GATE_CC_THRESHOLD
            return True

        if value_hi in _CLOCK_SOURCES:
            cfg.mode = value_hi
            cfg.tick_ofs = 0
            cfg.div = value_lo if value_lo else DEFAULT_GATE_DIV
            return True
        return False

    def to_bytes(self):
        """Serialise the gate configuration into its patch representation."""
        return b"".join(bytes(cfg) for cfg in self.configs)

    def load(self, data):
        """Restore the gate configuration from its patch representation."""
        data = bytes(data)
        size = GateConfig.SIZE * GATE_MAX
        if len(data) != size:
            raise ValueError(f"gate settings need {size} bytes, got {len(data)}")
        self.configs = [
            GateConfig(data[offset:offset + GateConfig.SIZE])
            for offset in range(0, size, GateConfig.SIZE)
        ]
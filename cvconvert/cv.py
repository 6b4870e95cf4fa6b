"""Control-voltage outputs driven by note stacks and raw MIDI controllers."""

from __future__ import annotations

from enum import IntEnum

from .constants import (
    CV_MAX,
    DEFAULT_CV_BPM_MAX_VOLTS,
    DEFAULT_CV_CC_MAX_VOLTS,
    DEFAULT_CV_PB_MAX_VOLTS,
    DEFAULT_CV_TEST_VOLTS,
    DEFAULT_CV_TOUCH_MAX_VOLTS,
    DEFAULT_CV_VEL_MAX_VOLTS,
    TRANSPOSE_NONE,
    Channel,
    ChannelValue,
    Event,
    NrpnLow,
    PitchScheme,
    SourceNote,
    SourceValue,
    is_chan,
)

I2C_ADDRESS = 0x60

_DAC_MAX = 4095
_DACS_PER_VOLT = 500
_BEND_CENTRE = 8192

# DAC values for each semitone of the top octave in Hz/V mode
_HZV_TABLE = (2000, 2119, 2245, 2378, 2520, 2670, 2828, 2997, 3175, 3364, 3564, 3775)
_HZV_TOP_C = 72
_HZV_TOP_C_DAC = 4000

_NOTE_EVENTS = (Event.NOTE_A, Event.NOTE_B, Event.NOTE_C, Event.NOTE_D)
_STACK_SOURCES = (
    SourceValue.STACK1,
    SourceValue.STACK2,
    SourceValue.STACK3,
    SourceValue.STACK4,
)


def _int16(value):
    """Wrap to a signed 16-bit integer."""
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _div(num, den):
    """Integer division truncating toward zero."""
    quotient = abs(num) // abs(den)
    return quotient if (num >= 0) == (den >= 0) else -quotient


def dac_setup_commands():
    """I2C write frames that set up the DAC: internal reference, then x2 gain."""
    address = I2C_ADDRESS << 1
    return [bytes((address, 0b10001111)), bytes((address, 0b11001111))]


class CvMode(IntEnum):
    """What a CV output follows."""

    DISABLE = 0
    NOTE = 1
    VEL = 2
    MIDI_BEND = 3
    MIDI_TOUCH = 4
    MIDI_CC = 5
    MIDI_BPM = 6
    TEST = 7
    NOTE_HZV = 8
    NOTE_12VO = 9


_NOTE_MODES = (CvMode.NOTE, CvMode.NOTE_HZV, CvMode.NOTE_12VO)


def _byte_field(offset, doc):
    def getter(self):
        return self._raw[offset]

    def setter(self, value):
        self._raw[offset] = value & 0xFF

    return property(getter, setter, doc=doc)


class CvConfig:
    """Seven-byte CV configuration record.

    Note-stack and MIDI modes read the same bytes under different names, so
    ``stack_id`` and ``chan`` share a byte, as do ``out`` and ``cc``.
    """

    SIZE = 7
    __slots__ = ("_raw",)

    def __init__(self, raw=None):
        raw = bytearray(self.SIZE if raw is None else raw)
        if len(raw) != self.SIZE:
            raise ValueError(f"CV config needs {self.SIZE} bytes, got {len(raw)}")
        self._raw = raw

    mode = _byte_field(0, "Output mode (a CvMode value).")
    volts = _byte_field(1, "Full-scale voltage for controller modes.")
    ofs = _byte_field(2, "Calibration offset, 64 is neutral.")
    scale = _byte_field(3, "Calibration scale, 64 is neutral, 0 disables calibration.")
    stack_id = _byte_field(4, "Note stack followed by stack-driven modes.")
    chan = _byte_field(4, "MIDI channel for controller modes.")
    out = _byte_field(5, "Note stack output followed in note modes.")
    cc = _byte_field(5, "Controller number in CC mode.")
    transpose = _byte_field(6, "Transpose in semitones, 64 is none.")

    def __bytes__(self):
        return bytes(self._raw)

    def __eq__(self, other):
        if not isinstance(other, CvConfig):
            return NotImplemented
        return self._raw == other._raw

    def __repr__(self):
        return f"CvConfig({bytes(self._raw)!r})"


class CvOutputs:
    """The four CV outputs, their configuration and cached DAC values."""

    def __init__(self, bus, settings):
        self.bus = bus
        self.settings = settings
        self.configs = [CvConfig() for _ in range(CV_MAX)]
        self.dac = [0] * CV_MAX
        self.notes = [0] * CV_MAX
        self.init()

    def init(self):
        """Clear configuration and state; return the DAC set-up frames to send."""
        self.configs = [CvConfig() for _ in range(CV_MAX)]
        self.dac = [0] * CV_MAX
        self.notes = [0] * CV_MAX
        return dac_setup_commands()

    def _update(self, which, value):
        value = _int16(value)
        cfg = self.configs[which]
        if cfg.scale:
            scale = cfg.scale - 64
            ofs = cfg.ofs - 64
            value = _int16(_div(value * (4096 + scale), 4096) + ofs)
        value = max(0, min(_DAC_MAX, value))
        if value != self.dac[which]:
            self.dac[which] = value
            self.bus.cv_dac_pending = True

    def _write_note(self, which, note, pitch_bend, dacs_per_oct):
        # pitch_bend is in 1/256 semitone units
        value = ((note << 8) + pitch_bend) * dacs_per_oct
        self._update(which, _div(value, 12) >> 8)

    def _write_note_hzvolt(self, which, note, pitch_bend):
        position = (note << 8) + pitch_bend
        fraction = position & 0xFF
        note = position >> 8
        if note == _HZV_TOP_C:
            dac = _HZV_TOP_C_DAC
        else:
            dac = _HZV_TABLE[(note & 0xFF) % 12]
        # linear interpolation towards the next semitone
        dac = _int16(dac + _div(dac * 244 * fraction, 0x100000))
        octave = min((note & 0xFF) // 12, 5)
        self._update(which, dac >> (5 - octave))

    def _write_7bit(self, which, value, volts):
        value = min(value, 127)
        self._update(which, (value * volts) << 2)

    def _write_bend(self, which, value, volts):
        self._update(which, (value * volts) >> 5)

    def _write_volts(self, which, value):
        self._update(which, value * _DACS_PER_VOLT)

    def dac_frame(self):
        """The I2C frame carrying all four DAC values, in DAC channel order."""
        frame = [I2C_ADDRESS << 1]
        for which in (1, 3, 2, 0):
            value = self.dac[which]
            frame.append((value >> 8) & 0x0F)
            frame.append(value & 0xFF)
        return bytes(frame)

    def event(self, event, stack_id, stack):
        """Handle an event from note stack ``stack_id`` whose state is ``stack``."""
        for which, cfg in enumerate(self.configs):
            if cfg.mode == CvMode.DISABLE or cfg.stack_id != stack_id:
                continue
            if cfg.mode in _NOTE_MODES:
                if event in _NOTE_EVENTS:
                    output_id = event - Event.NOTE_A
                    if cfg.out == output_id:
                        note = stack.out[output_id] + (cfg.transpose - TRANSPOSE_NONE) - 24
                        while note < 0:
                            note += 12
                        while note > 120:
                            note -= 12
                        self.notes[which] = note
                elif event != Event.BEND:
                    continue
                bend = _int16(stack.bend)
                note = self.notes[which]
                if cfg.mode == CvMode.NOTE_HZV:
                    self._write_note_hzvolt(which, note, bend)
                elif cfg.mode == CvMode.NOTE_12VO:
                    self._write_note(which, note, bend, 600)
                else:
                    self._write_note(which, note, bend, 500)
            elif cfg.mode == CvMode.VEL and event in _NOTE_EVENTS:
                self._write_7bit(which, stack.vel, cfg.volts)

    def _listening(self, mode, chan):
        for which, cfg in enumerate(self.configs):
            if cfg.mode == mode and is_chan(cfg.chan, chan, self.settings.chan):
                yield which, cfg

    def midi_cc(self, chan, cc, value):
        """Handle a MIDI controller change."""
        for which, cfg in self._listening(CvMode.MIDI_CC, chan):
            if cc == cfg.cc:
                self._write_7bit(which, value, cfg.volts)

    def midi_touch(self, chan, value):
        """Handle MIDI channel aftertouch."""
        for which, cfg in self._listening(CvMode.MIDI_TOUCH, chan):
            self._write_7bit(which, value, cfg.volts)

    def midi_bend(self, chan, value):
        """Handle a raw 14-bit MIDI pitch bend value."""
        for which, cfg in self._listening(CvMode.MIDI_BEND, chan):
            self._write_bend(which, value, cfg.volts)

    def nrpn(self, which_cv, param_lo, value_hi, value_lo):
        """Apply an NRPN setting to a CV output; return True if it was accepted."""
        if not 0 <= which_cv < CV_MAX:
            return False
        cfg = self.configs[which_cv]

        if param_lo == NrpnLow.SRC:
            return self._select_source(which_cv, cfg, value_hi, value_lo)

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

        if param_lo == NrpnLow.TRANSPOSE:
            cfg.transpose = value_lo
            return True

        if param_lo == NrpnLow.VOLTS:
            if 0 <= value_lo <= 8:
                cfg.volts = value_lo
                return True
            return False

        if param_lo == NrpnLow.PITCH_SCHEME:
            if value_lo == PitchScheme.HZV:
                cfg.mode = CvMode.NOTE_HZV
            elif value_lo == PitchScheme.VOCT_1_2:
                cfg.mode = CvMode.NOTE_12VO
            else:
                cfg.mode = CvMode.NOTE
            return True

        if param_lo == NrpnLow.CAL_SCALE:
            cfg.scale = value_lo
            return True
        if param_lo == NrpnLow.CAL_OFS:
            cfg.ofs = value_lo
            return True
        return False

    def _select_source(self, which_cv, cfg, value_hi, value_lo):
        if value_hi == SourceValue.DISABLE:
            self._write_volts(which_cv, 0)
            cfg.mode = CvMode.DISABLE
            return True
        if value_hi == SourceValue.TESTVOLTAGE:
            cfg.mode = CvMode.TEST
            cfg.volts = DEFAULT_CV_TEST_VOLTS
            return True
        if value_hi == SourceValue.MIDITICK:
            cfg.mode = CvMode.MIDI_BPM
            cfg.volts = DEFAULT_CV_BPM_MAX_VOLTS
            return True
        if value_hi == SourceValue.MIDICC:
            cfg.mode = CvMode.MIDI_CC
            cfg.chan = Channel.GLOBAL
            cfg.cc = value_lo
            cfg.volts = DEFAULT_CV_CC_MAX_VOLTS
            return True
        if value_hi == SourceValue.MIDITOUCH:
            cfg.mode = CvMode.MIDI_TOUCH
            cfg.chan = Channel.GLOBAL
            cfg.volts = DEFAULT_CV_TOUCH_MAX_VOLTS
            return True
        if value_hi == SourceValue.MIDIBEND:
            cfg.mode = CvMode.MIDI_BEND
            cfg.chan = Channel.GLOBAL
            cfg.volts = DEFAULT_CV_PB_MAX_VOLTS
            return True
        if value_hi in _STACK_SOURCES:
            cfg.stack_id = value_hi - SourceValue.STACK1
            if SourceNote.NOTE1 <= value_lo <= SourceNote.NOTE4:
                cfg.mode = CvMode.NOTE
                cfg.out = value_lo - SourceNote.NOTE1
                cfg.transpose = TRANSPOSE_NONE
                return True
            if value_lo == SourceNote.VEL:
                cfg.mode = CvMode.VEL
                cfg.volts = DEFAULT_CV_VEL_MAX_VOLTS
                return True
        return False

    def reset(self):
        """Drive every output to its idle voltage and mark the DAC for update."""
        for which, cfg in enumerate(self.configs):
            if cfg.mode == CvMode.TEST:
                self._write_volts(which, cfg.volts)
            elif cfg.mode == CvMode.MIDI_BEND:
                self._write_bend(which, _BEND_CENTRE, cfg.volts)
            else:
                self._write_volts(which, 0)
        self.bus.cv_dac_pending = True

    def to_bytes(self):
        """Serialise the CV configuration into its patch representation."""
        return b"".join(bytes(cfg) for cfg in self.configs)

    def load(self, data):
        """Restore the CV configuration from its patch representation."""
        data = bytes(data)
        size = CvConfig.SIZE * CV_MAX
        if len(data) != size:
            raise ValueError(f"CV settings need {size} bytes, got {len(data)}")
        self.configs = [
            CvConfig(data[offset:offset + CvConfig.SIZE])
            for offset in range(0, size, CvConfig.SIZE)
        ]
"""The converter device: MIDI input parsing, dispatch and the millisecond loop."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Optional

from .constants import (
    LED_PULSE_MIDI_BEAT,
    LED_PULSE_MIDI_IN,
    LED_PULSE_PARAM,
    LONG_BUTTON_PRESS,
    MIDI_CC_DATA_HI,
    MIDI_CC_DATA_LO,
    MIDI_CC_NRPN_HI,
    MIDI_CC_NRPN_LO,
    MIDI_MTC_QTR_FRAME,
    MIDI_SONG_SELECT,
    MIDI_SPP,
    MIDI_SYNCH_CONTINUE,
    MIDI_SYNCH_START,
    MIDI_SYNCH_STOP,
    MIDI_SYNCH_TICK,
    MIDI_SYSEX_BEGIN,
    MIDI_SYSEX_END,
    MY_SYSEX_ID,
    SHORT_BUTTON_PRESS,
    NrpnHigh,
)
from .cv import CvOutputs, dac_setup_commands
from .gate import Gates
from .settings import GlobalConfig
from .stack import NoteStacks
from .state import OutputBus
from .storage import read_patch, write_patch

RX_BUFFER_SIZE = 64
EEPROM_SIZE = 256
TICKS_PER_BEAT = 24

_REALTIME = (MIDI_SYNCH_TICK, MIDI_SYNCH_START, MIDI_SYNCH_CONTINUE, MIDI_SYNCH_STOP)
_REPORTED = (0x80, 0x90, 0xE0, 0xB0, 0xD0)


class _Sysex(IntEnum):
    NONE = 0
    IGNORE = 1
    ID0 = 2
    ID1 = 3
    ID2 = 4
    PARAMH = 5
    PARAML = 6
    VALUEH = 7
    VALUEL = 8


@dataclass(frozen=True)
class MidiMessage:
    """A complete MIDI message: status byte and its data bytes."""

    status: int
    params: tuple = ()

    @property
    def kind(self):
        """Status with the channel bits removed."""
        return self.status & 0xF0

    @property
    def channel(self):
        """Zero-based MIDI channel of a channel message."""
        return self.status & 0x0F


class MidiParser:
    """Buffered MIDI byte parser with running status and patch sysex decoding.

    ``on_param`` receives each (param_hi, param_lo, value_hi, value_lo) group
    carried by a patch sysex; ``on_sysex_end`` receives True when such a sysex
    ends cleanly and False when it ends mid-group.
    """

    def __init__(
        self,
        on_param: Optional[Callable[[int, int, int, int], None]] = None,
        on_sysex_end: Optional[Callable[[bool], None]] = None,
    ):
        self.on_param = on_param
        self.on_sysex_end = on_sysex_end
        # a ring buffer that keeps one slot free
        self._rx = deque()
        self._capacity = RX_BUFFER_SIZE - 1
        self._status = 0
        self._num_params = 0
        self._params = []
        self._sysex = _Sysex.NONE
        self._group = []

    def feed(self, data):
        """Queue received bytes; return how many fitted in the buffer."""
        stored = 0
        for byte in bytes(data):
            if len(self._rx) >= self._capacity:
                continue
            self._rx.append(byte)
            stored += 1
        return stored

    def next_message(self):
        """Consume buffered bytes until a message of interest completes, else None."""
        while self._rx:
            ch = self._rx.popleft()
            if ch & 0xF0 == 0xF0:
                message = self._system(ch)
            elif ch & 0x80:
                self._sysex = _Sysex.NONE
                self._params = []
                self._status = ch
                self._num_params = 1 if ch & 0xF0 in (0xC0, 0xD0) else 2
                message = None
            else:
                message = self._data(ch)
            if message is not None:
                return message
        return None

    def _system(self, ch):
        if ch in _REALTIME:
            return MidiMessage(ch)
        if ch in (MIDI_MTC_QTR_FRAME, MIDI_SONG_SELECT, MIDI_SPP):
            self._params = []
            self._status = ch
            self._num_params = 2 if ch == MIDI_SPP else 1
        elif ch == MIDI_SYSEX_BEGIN:
            self._sysex = _Sysex.ID0
        elif ch == MIDI_SYSEX_END:
            state = self._sysex
            self._sysex = _Sysex.NONE
            if state not in (_Sysex.NONE, _Sysex.IGNORE) and self.on_sysex_end:
                self.on_sysex_end(state == _Sysex.PARAMH)
        return None

    def _data(self, ch):
        state = self._sysex
        if state in (_Sysex.ID0, _Sysex.ID1, _Sysex.ID2):
            expected = MY_SYSEX_ID[state - _Sysex.ID0]
            self._sysex = _Sysex(state + 1) if ch == expected else _Sysex.IGNORE
            if self._sysex == _Sysex.PARAMH:
                self._group = []
            return None
        if state in (_Sysex.PARAMH, _Sysex.PARAML, _Sysex.VALUEH):
            self._group.append(ch)
            self._sysex = _Sysex(state + 1)
            return None
        if state == _Sysex.VALUEL:
            group = (*self._group, ch)
            self._group = []
            self._sysex = _Sysex.PARAMH
            if self.on_param:
                self.on_param(*group)
            return None
        if state == _Sysex.IGNORE or not self._status:
            return None
        self._params.append(ch)
        if len(self._params) < self._num_params:
            return None
        params = tuple(self._params)
        self._params = []
        if self._status & 0xF0 in _REPORTED:
            return MidiMessage(self._status, params)
        return None


class Converter:
    """The whole MIDI-to-CV converter: parser, note stacks, CV and gate outputs."""

    def __init__(self, eeprom=None):
        self.eeprom = bytearray([0xFF] * EEPROM_SIZE) if eeprom is None else eeprom
        self.bus = OutputBus()
        self.settings = GlobalConfig(on_save=self.save)
        self.gates = Gates(self.bus, self.settings)
        self.cv = CvOutputs(self.bus, self.settings)
        self.stacks = NoteStacks(self.settings, self.cv, self.gates)
        self.parser = MidiParser(on_param=self.nrpn, on_sysex_end=self._sysex_end)

        self.i2c_frames = list(dac_setup_commands())
        self.gate_lines = 0
        self.led1 = False
        self.led2 = False
        self.led1_timeout = 0
        self.led2_timeout = 0
        self.midi_ticks = 0
        self.button_press = 0
        self._nrpn_hi = 0
        self._nrpn_lo = 0
        self._nrpn_value_hi = 0

        self._pulse_led1(255)
        self._pulse_led2(255)
        read_patch(self.eeprom, self.settings, self.stacks, self.cv, self.gates)
        self.reset()

    def _pulse_led1(self, ms):
        self.led1 = True
        self.led1_timeout = ms

    def _pulse_led2(self, ms):
        self.led2 = True
        self.led2_timeout = ms

    def save(self):
        """Store the current patch in EEPROM."""
        write_patch(self.eeprom, self.settings, self.stacks, self.cv, self.gates)

    def reset(self):
        """Close all gates, return CVs to idle and release all held notes."""
        self.gates.reset()
        self.cv.reset()
        self.stacks.reset()

    def _sysex_end(self, valid):
        if valid:
            self.led1 = False
            self.led2 = False
            self.save()
        else:
            self.led1 = False
            self.led2 = False
        self.reset()

    def receive(self, data):
        """Accept raw bytes from the MIDI input; return how many were buffered."""
        data = bytes(data)
        stored = self.parser.feed(data)
        if data:
            self._pulse_led1(LED_PULSE_MIDI_IN)
        return stored

    def nrpn(self, param_hi, param_lo, value_hi, value_lo):
        """Route a configuration parameter to its unit; return True if accepted."""
        if param_hi == NrpnHigh.GLOBAL:
            result = self.settings.nrpn(param_lo, value_hi, value_lo)
        elif NrpnHigh.STACK1 <= param_hi <= NrpnHigh.STACK4:
            result = self.stacks.nrpn(param_hi - NrpnHigh.STACK1, param_lo, value_hi, value_lo)
        elif NrpnHigh.GATE1 <= param_hi <= NrpnHigh.GATE12:
            result = self.gates.nrpn(param_hi - NrpnHigh.GATE1, param_lo, value_hi, value_lo)
        elif NrpnHigh.CV1 <= param_hi <= NrpnHigh.CV4:
            result = self.cv.nrpn(param_hi - NrpnHigh.CV1, param_lo, value_hi, value_lo)
        else:
            result = False
        if result:
            self._pulse_led2(LED_PULSE_PARAM)
        return bool(result)

    def poll(self):
        """Handle every complete buffered message and flush outputs; return them."""
        handled = []
        while (message := self.parser.next_message()) is not None:
            self._dispatch(message)
            self._flush()
            handled.append(message)
        self._flush()
        return handled

    def _dispatch(self, message):
        kind = message.kind
        chan = message.channel
        params = message.params
        if kind == 0xF0:
            status = message.status
            if status == MIDI_SYNCH_TICK:
                if not self.midi_ticks:
                    self._pulse_led2(LED_PULSE_MIDI_BEAT)
                self.midi_ticks += 1
                if self.midi_ticks >= TICKS_PER_BEAT:
                    self.midi_ticks = 0
            elif status == MIDI_SYNCH_START:
                self.midi_ticks = 0
            self.gates.midi_clock(status)
        elif kind == 0x80:
            self.stacks.midi_note(chan, params[0], 0)
            self.gates.midi_note(chan, params[0], 0)
        elif kind == 0x90:
            self.stacks.midi_note(chan, params[0], params[1])
            self.gates.midi_note(chan, params[0], params[1])
        elif kind == 0xB0:
            self._control_change(chan, params[0], params[1])
        elif kind == 0xD0:
            self.cv.midi_touch(chan, params[0])
        elif kind == 0xE0:
            bend = (params[1] << 7) | (params[0] & 0x7F)
            self.stacks.midi_bend(chan, bend)
            self.cv.midi_bend(chan, bend)

    def _control_change(self, chan, cc, value):
        if cc == MIDI_CC_NRPN_HI:
            self._nrpn_hi = value
            self._nrpn_lo = 0
            self._nrpn_value_hi = 0
        elif cc == MIDI_CC_NRPN_LO:
            self._nrpn_lo = value
            self._nrpn_value_hi = 0
        elif cc == MIDI_CC_DATA_HI:
            self._nrpn_value_hi = value
        elif cc == MIDI_CC_DATA_LO:
            self.nrpn(self._nrpn_hi, self._nrpn_lo, self._nrpn_value_hi, value)
        else:
            self.cv.midi_cc(chan, cc, value)
            self.gates.midi_cc(chan, cc, value)

    def tick(self, button_down=False):
        """Run one millisecond: gate timers, LED timeouts and the button."""
        self.gates.run()
        if self.led1_timeout:
            self.led1_timeout -= 1
            if not self.led1_timeout:
                self.led1 = False
        if self.led2_timeout:
            self.led2_timeout -= 1
            if not self.led2_timeout:
                self.led2 = False
        if button_down:
            self.button_press += 1
            if self.button_press == SHORT_BUTTON_PRESS:
                self.reset()
                self._pulse_led2(100)
            elif self.button_press == LONG_BUTTON_PRESS:
                self.led2 = True
                self.save()
                self._pulse_led2(255)
        else:
            self.button_press = 0
        self._flush()

    def _flush(self):
        bus = self.bus
        if bus.cv_dac_pending:
            self.i2c_frames.append(self.cv.dac_frame())
            bus.cv_dac_pending = False
            bus.release_synced_gates()
        if bus.sr_retrigs:
            self.shift_out(bus.sr_retrigs)
            bus.sr_retrigs = 0
        if bus.sr_data_pending:
            bus.sr_data_pending = False
            self.shift_out(0)

    def shift_out(self, nmask):
        """Latch gate data into the shift registers, forcing ``nmask`` bits low.

        Returns the eight (register 1, register 2) data bits clocked out,
        most significant first.
        """
        data = self.bus.sr_data & ~nmask & 0xFFFF
        self.gate_lines = data
        return [
            (bool(data & (0x80 >> shift)), bool(data & (0x8000 >> shift)))
            for shift in range(8)
        ]
"""Shared constants, enumerations and channel/note matching rules."""

from enum import IntEnum

# Output counts and sizes
CV_MAX = 4
GATE_MAX = 12
SZ_NOTE_STACK = 5
NUM_NOTE_STACKS = 4
NUM_STACK_OUTPUTS = 4
NO_NOTE_OUT = 0xFF
I2C_TX_BUF_SZ = 12

# Defaults
DEFAULT_GATE_NOTE = 60
DEFAULT_GATE_CC = 1
DEFAULT_GATE_CC_THRESHOLD = 64
DEFAULT_GATE_DIV = 6
DEFAULT_GATE_DURATION = 10
DEFAULT_ACCENT_VELOCITY = 127
DEFAULT_MIDI_CHANNEL = 0
DEFAULT_CV_BPM_MAX_VOLTS = 5
DEFAULT_CV_CC_MAX_VOLTS = 5
DEFAULT_CV_PB_MAX_VOLTS = 5
DEFAULT_CV_VEL_MAX_VOLTS = 5
DEFAULT_CV_TOUCH_MAX_VOLTS = 5
DEFAULT_CV_TEST_VOLTS = 5

# Millisecond timings
SHORT_BUTTON_PRESS = 40
LONG_BUTTON_PRESS = 2000
LED_PULSE_MIDI_IN = 2
LED_PULSE_MIDI_TICK = 10
LED_PULSE_MIDI_BEAT = 100
LED_PULSE_PARAM = 255

# MIDI message bytes
MIDI_MTC_QTR_FRAME = 0xF1
MIDI_SPP = 0xF2
MIDI_SONG_SELECT = 0xF3
MIDI_SYNCH_TICK = 0xF8
MIDI_SYNCH_START = 0xFA
MIDI_SYNCH_CONTINUE = 0xFB
MIDI_SYNCH_STOP = 0xFC
MIDI_SYSEX_BEGIN = 0xF0
MIDI_SYSEX_END = 0xF7

MIDI_CC_NRPN_HI = 99
MIDI_CC_NRPN_LO = 98
MIDI_CC_DATA_HI = 6
MIDI_CC_DATA_LO = 38

# Sysex manufacturer id for patch dumps
MY_SYSEX_ID = (0x00, 0x7F, 0x15)

# Special gate durations
GATE_DUR_INFINITE = 0x00
GATE_DUR_GLOBAL = 0x80

# Transpose value meaning "no transpose"
TRANSPOSE_NONE = 64


class Channel(IntEnum):
    """Special MIDI channel settings."""

    OMNI = 0x80
    GLOBAL = 0x81
    DISABLE = 0xFF


class Event(IntEnum):
    """Events emitted by a note stack."""

    NOTE_A = 1
    NOTE_B = 2
    NOTE_C = 3
    NOTE_D = 4
    NO_NOTE_A = 5
    NO_NOTE_B = 6
    NO_NOTE_C = 7
    NO_NOTE_D = 8
    NOTES_OFF = 9
    NOTE_ON = 10
    BEND = 11


class Priority(IntEnum):
    """Note stack prioritisation schemes."""

    LAST = 0
    LOW = 1
    HIGH = 3
    CYCLE2 = 6
    CYCLE3 = 7
    CYCLE4 = 8
    CHORD2 = 9
    CHORD3 = 10
    CHORD4 = 11
    MAX = 12


class NrpnHigh(IntEnum):
    """High byte of an NRPN parameter number: which unit is addressed."""

    GLOBAL = 1
    STACK1 = 11
    STACK2 = 12
    STACK3 = 13
    STACK4 = 14
    CV1 = 21
    CV2 = 22
    CV3 = 23
    CV4 = 24
    GATE1 = 31
    GATE2 = 32
    GATE3 = 33
    GATE4 = 34
    GATE5 = 35
    GATE6 = 36
    GATE7 = 37
    GATE8 = 38
    GATE9 = 39
    GATE10 = 40
    GATE11 = 41
    GATE12 = 42


class NrpnLow(IntEnum):
    """Low byte of an NRPN parameter number: which setting is addressed."""

    SRC = 1
    CHAN = 2
    NOTE_MIN = 3
    NOTE = 3
    NOTE_MAX = 4
    VEL_MIN = 5
    PB_RANGE = 7
    PRIORITY = 8
    TICK_OFS = 11
    GATE_DUR = 12
    THRESHOLD = 13
    TRANSPOSE = 14
    VOLTS = 15
    PITCH_SCHEME = 16
    CAL_SCALE = 98
    CAL_OFS = 99
    SAVE = 100


class SourceValue(IntEnum):
    """High byte of an NRPN value selecting a source."""

    DISABLE = 0
    MIDINOTE = 1
    MIDICC = 2
    MIDICC_NEG = 3
    MIDIBEND = 4
    MIDITOUCH = 5
    STACK1 = 11
    STACK2 = 12
    STACK3 = 13
    STACK4 = 14
    MIDITICK = 20
    MIDITICKRUN = 21
    MIDIRUN = 22
    MIDISTART = 23
    MIDISTOP = 25
    MIDISTARTSTOP = 26
    TESTVOLTAGE = 127


class ChannelValue(IntEnum):
    """High byte of an NRPN value selecting a channel mode."""

    SPECIFIC = 0
    OMNI = 1
    GLOBAL = 2


class DurationValue(IntEnum):
    """High byte of an NRPN value selecting a gate duration mode."""

    INF = 0
    MS = 1
    GLOBAL = 2
    RETRIG = 3


class PitchScheme(IntEnum):
    """Low byte of an NRPN value selecting a pitch scheme."""

    VOCT = 0
    HZV = 1
    VOCT_1_2 = 2


class SourceNote(IntEnum):
    """Low byte of an NRPN value selecting a note stack output."""

    NO_NOTES = 0
    NOTE1 = 1
    NOTE2 = 2
    NOTE3 = 3
    NOTE4 = 4
    ANY_NOTES = 5
    VEL = 20


def is_chan(mychan, chan, global_chan):
    """Whether a configured channel accepts messages on ``chan``."""
    return (
        chan == mychan
        or mychan == Channel.OMNI
        or (mychan == Channel.GLOBAL and global_chan == chan)
    )


def is_note_match(note_min, note_max, note):
    """Whether ``note`` matches a range; a zero maximum means an exact match."""
    if not note_max:
        return note == note_min
    return note_min <= note <= note_max
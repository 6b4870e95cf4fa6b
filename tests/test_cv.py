import pytest

from cvconvert.constants import (
    DEFAULT_CV_CC_MAX_VOLTS,
    NO_NOTE_OUT,
    TRANSPOSE_NONE,
    Channel,
    ChannelValue,
    Event,
    NrpnLow,
    PitchScheme,
    SourceNote,
    SourceValue,
)
from cvconvert.cv import CvConfig, CvMode, CvOutputs, dac_setup_commands
from cvconvert.settings import GlobalConfig
from cvconvert.state import NoteStackState, OutputBus


@pytest.fixture
def cv():
    return CvOutputs(OutputBus(), GlobalConfig())


def _stack(note, vel=100, bend=0):
    return NoteStackState(out=[note, NO_NOTE_OUT, NO_NOTE_OUT, NO_NOTE_OUT], vel=vel, bend=bend)


def _note_dac(cv, note, bend=0):
    cv.event(Event.NOTE_A, 0, _stack(note, bend=bend))
    return cv.dac[0]


def _note_output(cv, scheme=None):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.STACK1, SourceNote.NOTE1)
    if scheme is not None:
        assert cv.nrpn(0, NrpnLow.PITCH_SCHEME, 0, scheme)


def test_dac_setup_commands_wire_bytes():
    assert dac_setup_commands() == [bytes((0xC0, 0x8F)), bytes((0xC0, 0xCF))]


def test_init_returns_setup_and_clears(cv):
    cv.dac[2] = 100
    assert cv.init() == dac_setup_commands()
    assert cv.dac == [0, 0, 0, 0]
    assert cv.to_bytes() == bytes(28)


def test_note_octave_is_500_steps(cv):
    _note_output(cv)
    low = _note_dac(cv, 60)
    high = _note_dac(cv, 72)
    assert high - low == 500
    assert low == 1500


def test_12vo_octave_is_600_steps(cv):
    _note_output(cv, PitchScheme.VOCT_1_2)
    assert cv.configs[0].mode == CvMode.NOTE_12VO
    assert _note_dac(cv, 72) - _note_dac(cv, 60) == 600


def test_hzv_octave_doubles(cv):
    _note_output(cv, PitchScheme.HZV)
    assert cv.configs[0].mode == CvMode.NOTE_HZV
    assert _note_dac(cv, 72) == 2 * _note_dac(cv, 60)


def test_hzv_top_c(cv):
    _note_output(cv, PitchScheme.HZV)
    assert _note_dac(cv, 96) == 4000


def test_bend_of_one_semitone_matches_next_note(cv):
    _note_output(cv)
    bent = _note_dac(cv, 60, bend=256)
    assert bent == _note_dac(cv, 61)


def test_bend_event_updates_note(cv):
    _note_output(cv)
    _note_dac(cv, 60)
    cv.event(Event.BEND, 0, _stack(60, bend=256 * 12))
    assert cv.dac[0] == _note_dac(cv, 72)


def test_transpose_shifts_note(cv):
    _note_output(cv)
    up = _note_dac(cv, 72)
    assert cv.nrpn(0, NrpnLow.TRANSPOSE, 0, TRANSPOSE_NONE + 12)
    assert _note_dac(cv, 60) == up


def test_event_other_stack_or_output_ignored(cv):
    _note_output(cv)
    cv.event(Event.NOTE_A, 1, _stack(72))
    cv.event(Event.NOTE_B, 0, _stack(72))
    assert cv.dac[0] == 0
    assert cv.notes[0] == 0


def test_velocity_matches_cc_scaling(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.STACK1, SourceNote.VEL)
    assert cv.nrpn(1, NrpnLow.SRC, SourceValue.MIDICC, 7)
    cv.event(Event.NOTE_B, 0, _stack(60, vel=100))
    cv.midi_cc(0, 7, 100)
    assert cv.dac[0] == cv.dac[1]
    assert cv.dac[0] > 0


def test_7bit_value_is_clamped(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.MIDICC, 1)
    cv.midi_cc(0, 1, 127)
    full = cv.dac[0]
    cv.midi_cc(0, 1, 200)
    assert cv.dac[0] == full


def test_cc_channel_and_number_filter(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.MIDICC, 1)
    cv.midi_cc(3, 1, 100)
    cv.midi_cc(0, 2, 100)
    assert cv.dac[0] == 0
    assert cv.bus.cv_dac_pending is False


def test_cc_specific_and_omni_channel(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.MIDICC, 1)
    assert cv.nrpn(0, NrpnLow.CHAN, ChannelValue.SPECIFIC, 4)
    assert cv.configs[0].chan == 3
    cv.midi_cc(3, 1, 50)
    specific = cv.dac[0]
    assert specific > 0
    assert cv.nrpn(0, NrpnLow.CHAN, ChannelValue.OMNI, 0)
    assert cv.configs[0].chan == Channel.OMNI
    cv.midi_cc(9, 1, 100)
    assert cv.dac[0] > specific


def test_touch(cv):
    assert cv.nrpn(2, NrpnLow.SRC, SourceValue.MIDITOUCH, 0)
    cv.midi_touch(0, 64)
    assert cv.dac[2] > 0
    assert cv.bus.cv_dac_pending is True


def test_bend_centre_equals_reset_value(cv):
    assert cv.nrpn(1, NrpnLow.SRC, SourceValue.MIDIBEND, 0)
    cv.midi_bend(0, 0)
    assert cv.dac[1] == 0
    cv.midi_bend(0, 8192)
    centre = cv.dac[1]
    cv.midi_bend(0, 0)
    cv.reset()
    assert cv.dac[1] == centre
    cv.midi_bend(0, 16383)
    assert cv.dac[1] > centre


def test_reset_test_voltage(cv):
    assert cv.nrpn(3, NrpnLow.SRC, SourceValue.TESTVOLTAGE, 0)
    cv.reset()
    assert cv.dac[3] == 2500
    assert cv.bus.cv_dac_pending is True


def test_dac_clamped_to_4095(cv):
    cv.load(bytes((CvMode.TEST, 9, 0, 0, 0, 0, 0)) + bytes(21))
    cv.reset()
    assert cv.dac[0] == 4095


def test_disable_writes_zero(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.TESTVOLTAGE, 0)
    cv.reset()
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.DISABLE, 0)
    assert cv.dac[0] == 0
    assert cv.configs[0].mode == CvMode.DISABLE


def test_unchanged_value_does_not_set_pending(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.MIDICC, 1)
    cv.midi_cc(0, 1, 50)
    cv.bus.cv_dac_pending = False
    cv.midi_cc(0, 1, 50)
    assert cv.bus.cv_dac_pending is False


def test_calibration_neutral_and_offset(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.MIDICC, 1)
    cv.midi_cc(0, 1, 50)
    raw = cv.dac[0]
    assert cv.nrpn(0, NrpnLow.CAL_SCALE, 0, 64)
    assert cv.nrpn(0, NrpnLow.CAL_OFS, 0, 64)
    cv.midi_cc(0, 1, 50)
    assert cv.dac[0] == raw
    assert cv.nrpn(0, NrpnLow.CAL_OFS, 0, 70)
    cv.midi_cc(0, 1, 50)
    assert cv.dac[0] == raw + 6


def test_dac_frame_layout(cv):
    cv.dac[:] = [0x123, 0x456, 0x789, 0xABC]
    frame = cv.dac_frame()
    assert len(frame) == 9
    assert frame[0] == 0xC0
    decoded = [(frame[i] << 8) | frame[i + 1] for i in (1, 3, 5, 7)]
    assert decoded == [cv.dac[1], cv.dac[3], cv.dac[2], cv.dac[0]]


def test_nrpn_source_cc_defaults(cv):
    assert cv.nrpn(1, NrpnLow.SRC, SourceValue.MIDICC, 74)
    cfg = cv.configs[1]
    assert cfg.mode == CvMode.MIDI_CC
    assert cfg.chan == Channel.GLOBAL
    assert cfg.cc == 74
    assert cfg.volts == DEFAULT_CV_CC_MAX_VOLTS


def test_nrpn_rejections(cv):
    assert cv.nrpn(4, NrpnLow.SRC, SourceValue.MIDICC, 1) is False
    assert cv.nrpn(0, NrpnLow.VOLTS, 0, 9) is False
    assert cv.nrpn(0, NrpnLow.CHAN, ChannelValue.SPECIFIC, 0) is False
    assert cv.nrpn(0, NrpnLow.CHAN, ChannelValue.SPECIFIC, 17) is False
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.STACK2, SourceNote.ANY_NOTES) is False
    assert cv.nrpn(0, NrpnLow.PB_RANGE, 0, 2) is False
    assert cv.nrpn(0, NrpnLow.VOLTS, 0, 8) is True
    assert cv.configs[0].volts == 8


def test_stack_source_sets_output(cv):
    assert cv.nrpn(2, NrpnLow.SRC, SourceValue.STACK3, SourceNote.NOTE4)
    cfg = cv.configs[2]
    assert (cfg.mode, cfg.stack_id, cfg.out, cfg.transpose) == (CvMode.NOTE, 2, 3, TRANSPOSE_NONE)


def test_bytes_round_trip(cv):
    assert cv.nrpn(0, NrpnLow.SRC, SourceValue.STACK2, SourceNote.NOTE2)
    assert cv.nrpn(3, NrpnLow.SRC, SourceValue.MIDIBEND, 0)
    data = cv.to_bytes()
    other = CvOutputs(OutputBus(), GlobalConfig())
    other.load(data)
    assert other.configs == cv.configs
    assert other.to_bytes() == data


def test_load_wrong_length(cv):
    with pytest.raises(ValueError):
        cv.load(bytes(27))


def test_config_wrong_length():
    with pytest.raises(ValueError):
        CvConfig(bytes(3))


def test_config_shared_fields():
    cfg = CvConfig()
    cfg.chan = 5
    cfg.cc = 300
    assert cfg.stack_id == 5
    assert cfg.out == 300 & 0xFF
    assert bytes(cfg)[4:6] == bytes((5, 300 & 0xFF))
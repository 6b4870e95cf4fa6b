import pytest

from cvconvert.constants import (
    DEFAULT_GATE_DURATION,
    DEFAULT_MIDI_CHANNEL,
    ChannelValue,
    DurationValue,
    NrpnLow,
)
from cvconvert.settings import GlobalConfig


def test_defaults():
    cfg = GlobalConfig()
    assert cfg.chan == DEFAULT_MIDI_CHANNEL
    assert cfg.gate_duration == DEFAULT_GATE_DURATION


def test_specific_channel_is_one_based():
    cfg = GlobalConfig()
    assert cfg.nrpn(NrpnLow.CHAN, ChannelValue.SPECIFIC, 1) is True
    assert cfg.chan == 0
    assert cfg.nrpn(NrpnLow.CHAN, ChannelValue.SPECIFIC, 16) is True
    assert cfg.chan == 15


@pytest.mark.parametrize("value_lo", [0, 17, 127])
def test_channel_out_of_range_rejected(value_lo):
    cfg = GlobalConfig(chan=3)
    assert cfg.nrpn(NrpnLow.CHAN, ChannelValue.SPECIFIC, value_lo) is False
    assert cfg.chan == 3


def test_any_channel_mode_treated_as_specific():
    cfg = GlobalConfig()
    assert cfg.nrpn(NrpnLow.CHAN, ChannelValue.OMNI, 16) is True
    assert cfg.chan == 15


def test_gate_duration_in_ms():
    cfg = GlobalConfig()
    assert cfg.nrpn(NrpnLow.GATE_DUR, DurationValue.MS, 42) is True
    assert cfg.gate_duration == 42


@pytest.mark.parametrize("value_hi", [DurationValue.INF, DurationValue.GLOBAL, DurationValue.RETRIG])
def test_other_duration_modes_rejected(value_hi):
    cfg = GlobalConfig()
    assert cfg.nrpn(NrpnLow.GATE_DUR, value_hi, 42) is False
    assert cfg.gate_duration == DEFAULT_GATE_DURATION


def test_save_invokes_callback():
    calls = []
    cfg = GlobalConfig(on_save=lambda: calls.append(True))
    assert cfg.nrpn(NrpnLow.SAVE, 0, 0) is True
    assert calls == [True]


def test_save_without_callback_still_accepted():
    assert GlobalConfig().nrpn(NrpnLow.SAVE, 0, 0) is True


def test_unknown_parameter_rejected():
    cfg = GlobalConfig()
    assert cfg.nrpn(NrpnLow.PRIORITY, 0, 1) is False
    assert cfg == GlobalConfig()


def test_round_trip():
    cfg = GlobalConfig(chan=9, gate_duration=77)
    restored = GlobalConfig()
    restored.load(cfg.to_bytes())
    assert restored == cfg
    assert len(cfg.to_bytes()) == GlobalConfig.SIZE


def test_bytes_layout():
    assert GlobalConfig(chan=5, gate_duration=20).to_bytes() == bytes([5, 20])


@pytest.mark.parametrize("data", [b"", b"\x01", b"\x01\x02\x03"])
def test_load_wrong_length(data):
    with pytest.raises(ValueError):
        GlobalConfig().load(data)
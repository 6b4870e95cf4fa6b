from cvconvert.constants import NO_NOTE_OUT, NUM_STACK_OUTPUTS
from cvconvert.state import NoteStackState, OutputBus


def test_release_merges_synced_bits():
    bus = OutputBus(sr_data=0x0100, sync_sr_data=0x0005, sync_sr_data_pending=True)
    assert bus.release_synced_gates() is True
    assert bus.sr_data == 0x0100 | 0x0005
    assert bus.sync_sr_data == 0
    assert bus.sync_sr_data_pending is False
    assert bus.sr_data_pending is True


def test_release_without_pending_changes_nothing():
    bus = OutputBus(sr_data=0x0001, sync_sr_data=0x0004)
    before = OutputBus(sr_data=0x0001, sync_sr_data=0x0004)
    assert bus.release_synced_gates() is False
    assert bus == before


def test_release_is_idempotent():
    bus = OutputBus(sync_sr_data=0x0008, sync_sr_data_pending=True)
    bus.release_synced_gates()
    snapshot = OutputBus(**vars(bus))
    assert bus.release_synced_gates() is False
    assert bus == snapshot


def test_new_stack_has_no_output_notes():
    stack = NoteStackState()
    assert stack.out == [NO_NOTE_OUT] * NUM_STACK_OUTPUTS
    assert stack.count == 0


def test_count_follows_held_notes():
    stack = NoteStackState(notes=[60, 64, 67])
    assert stack.count == 3


def test_clear_resets_everything():
    stack = NoteStackState(notes=[60, 62], out=[60, 62, 1, 2], bend=-512, vel=100, index=2)
    stack.clear()
    assert stack == NoteStackState()
    assert stack.count == 0


def test_outputs_are_not_shared_between_stacks():
    first, second = NoteStackState(), NoteStackState()
    first.out[0] = 60
    assert second.out[0] == NO_NOTE_OUT
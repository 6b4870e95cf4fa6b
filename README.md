# cvconvert

A pure-Python model of a MIDI-to-CV converter with four CV outputs and
twelve gate outputs. You feed it raw MIDI bytes. It works out the 12-bit
DAC values for the CV outputs and the bit pattern for the gate shift
registers.

## Modules

- `cvconvert.constants`: output counts, defaults, MIDI status bytes and the
  NRPN numbering (`NrpnHigh`, `NrpnLow`, `SourceValue`, `ChannelValue`,
  `DurationValue`, `PitchScheme`, `SourceNote`). It also holds the event and
  priority enums (`Event`, `Priority`, `Channel`) and the matching helpers
  `is_chan` and `is_note_match`.
- `cvconvert.settings.GlobalConfig`: the default MIDI channel and the default
  gate length in ms.
- `cvconvert.state`: `OutputBus` holds the pending DAC and shift-register
  data. `NoteStackState` holds the notes a stack is holding, its four output
  notes, its bend and its velocity.
- `cvconvert.stack.NoteStacks`: four note stacks, each set up by a
  `StackConfig`. A stack can give priority to the last, lowest or highest
  note. It can also cycle notes round 2–4 outputs, or spread a chord over
  2–4 outputs.
- `cvconvert.cv.CvOutputs`: four CV outputs, each set up by a `CvConfig`.
  Each output can follow one of these:
  - a stack's note pitch, at 1V/oct, 1.2V/oct or Hz/V
  - a stack's velocity
  - a MIDI CC
  - channel aftertouch
  - pitch bend
  - a fixed test voltage

  Each output has its own scale and offset calibration.
  `dac_frame()` returns the I2C frame that carries all four DAC values.
  `dac_setup_commands()` returns the frames that set up the DAC.
- `cvconvert.gate.Gates`: twelve gates, each set up by a `GateConfig`.
  A gate can follow:
  - note-stack events
  - raw MIDI notes or note ranges, with a minimum velocity
  - a CC crossing a threshold, in either direction
  - MIDI clock ticks, with a divider and an offset
  - MIDI start and stop, and whether the clock is running

  A gate can give a fixed-length pulse, stay open while it is held,
  use the global length, or retrigger.
- `cvconvert.storage`: `write_patch` and `read_patch` save and load the whole
  configuration. They use a byte store such as a `bytearray`. The store
  begins with the marker byte `0xA9`. `read_patch` returns `False` if the
  marker is missing.
- `cvconvert.device`:
  - `MidiParser` buffers up to 63 bytes. It handles running status and
    decodes patch SysEx.
  - `Converter` ties all the units together.

## Example

```python
from cvconvert.device import Converter

eeprom = bytearray(256)
unit = Converter(eeprom)

# CV1 follows note output A of stack 1
unit.nrpn(21, 1, 11, 1)
# Gate 1 opens while stack 1 has a note on output A
unit.nrpn(31, 1, 11, 1)

unit.receive(bytes([0x90, 60, 100]))   # note on, middle C, channel 1
messages = unit.poll()                 # list of MidiMessage objects handled

print(unit.cv.dac)          # current DAC values of the four outputs
print(unit.i2c_frames[-1])  # last frame sent to the DAC
print(hex(unit.gate_lines)) # gate bits last latched into the shift registers
```

If no store is given, `Converter()` makes 256 bytes of `0xFF`. When it
starts, it loads a stored patch if there is one, then resets every output.

## Configuration

All settings are NRPN parameters. You can set them in three ways:

- call `Converter.nrpn(param_hi, param_lo, value_hi, value_lo)` directly;
- send MIDI CC 99 and 98 for the parameter number, then CC 6 and CC 38 for
  the value. CC 38 applies the setting;
- send a SysEx message `F0 00 7F 15`, then any number of four-byte groups
  `param_hi param_lo value_hi value_lo`, then `F7`.

A SysEx message that ends cleanly saves the patch and resets the unit. If it
ends in the middle of a group, the unit only resets. Global parameter 100
(`nrpn(1, 100, 0, 0)`) also saves the patch.

## Timing and the button

Call `Converter.tick(button_down=False)` once per simulated millisecond.
Each call runs the gate timers and the LED timeouts; the LED states are in
`led1` and `led2`. Holding the button (`button_down=True`) for 40 ticks
resets every output. Holding it for 2000 ticks saves the patch.

## What this package does not do

It is a model and talks to no hardware. It does not:

- open a MIDI port;
- drive an I2C bus or real gate pins;
- run its own clock.

Your code supplies the MIDI bytes and calls `tick()`. It reads the results
from `i2c_frames`, `gate_lines` and the unit objects. The LED blink
patterns and delays that follow a SysEx dump are not modelled. There is no
command-line tool.

## Tests

```
pip install .[test]
pytest
```
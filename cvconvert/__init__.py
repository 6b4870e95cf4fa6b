"""Model of a MIDI-to-CV/gate converter: note stacks, CV and gate outputs, configuration and patch storage."""

__version__ = "0.1.0"
__all__ = ["constants", "settings", "state", "gate", "cv", "stack", "storage", "device"]
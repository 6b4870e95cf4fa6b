"""Saving and restoring the complete patch in EEPROM."""

from __future__ import annotations

MAGIC_COOKIE = 0xA9
_PATCH_START = 1


def _sections(settings, stacks, cv, gates):
    return (settings, stacks, cv, gates)


def write_patch(eeprom, settings, stacks, cv, gates):
    """Store every configuration block in ``eeprom`` after the magic cookie."""
    eeprom[0] = MAGIC_COOKIE
    address = _PATCH_START
    for section in _sections(settings, stacks, cv, gates):
        blob = section.to_bytes()
        eeprom[address:address + len(blob)] = blob
        address += len(blob)
    return address


def read_patch(eeprom, settings, stacks, cv, gates):
    """Restore configuration from ``eeprom``; return False if no patch is stored."""
    if eeprom[0] != MAGIC_COOKIE:
        return False
    address = _PATCH_START
    for section in _sections(settings, stacks, cv, gates):
        size = len(section.to_bytes())
        section.load(bytes(eeprom[address:address + size]))
        address += size
    return True
"""Flash Intel HEX firmware and EEPROM images into USB bootloaders."""

__version__ = "1.0.0"

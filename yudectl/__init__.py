"""Send the LED reset command to a Yudetamago peripheral over BLE."""

__version__ = "0.1.0"

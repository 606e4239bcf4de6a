"""wizardplane — control-plane for the toolchain setup wizard."""

__version__ = "0.1.0"

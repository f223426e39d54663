"""Emulator launch and guest output monitoring."""

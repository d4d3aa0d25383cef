"""Preset storage and control frame export."""

"""Waveform synthesis, audio devices and WAV files."""

"""Command line application for xprobe."""

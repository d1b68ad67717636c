"""Peaklog command-line interface."""

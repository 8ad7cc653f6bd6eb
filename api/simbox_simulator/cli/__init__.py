"""Command-line interface for the SIM box simulator."""

"""SIM box simulator - synthetic call/mobility traffic with cohort fraud detection."""

__version__ = "0.1.0"

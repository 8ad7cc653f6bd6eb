"""Simulation core: devices, the SIM box, routing, pacing and the event engine."""

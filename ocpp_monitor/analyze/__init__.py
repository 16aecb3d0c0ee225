"""Offline analysis tools for captured OCPP serial logs."""

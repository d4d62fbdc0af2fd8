"""Ports (Protocols) and the application state container."""

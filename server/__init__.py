"""Garage Manager API server (Flask)."""

"""Utility helpers for the governance kernel."""

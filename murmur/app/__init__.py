"""Relay application package."""

"""Helpers shared by the queue services."""

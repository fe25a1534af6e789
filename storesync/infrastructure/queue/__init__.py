"""Durable offline operation queue."""

"""Outbox operator API application."""

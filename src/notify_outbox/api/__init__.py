"""HTTP API for the notification outbox."""

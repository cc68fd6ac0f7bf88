"""
Notify Outbox

Transactional notification outbox with a multi-channel dispatcher
(email, SMS, chat) and an operator API for inspection and retry.
"""

__version__ = "1.0.0"

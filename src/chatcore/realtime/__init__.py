"""
Chat Core Realtime

Change feed subscriptions and the PostgreSQL LISTEN bridge.
"""
from .change_feed import ChangeFeed, ChangeEvent, ChangeType, Subscription
from .pg_listener import PgChangeListener

__all__ = [
    'ChangeFeed',
    'ChangeEvent',
    'ChangeType',
    'Subscription',
    'PgChangeListener',
]

# Stores module exports
from .interfaces import LedgerStore, EventStore, GuestStore
from .mongo import MongoLedgerStore, MongoEventStore, MongoGuestStore

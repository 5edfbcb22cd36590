"""
Routes package for the invitation API

Routes are organized by domain:
- health: Health check endpoints
- events: Event CRUD, guarded publish, guest export and invitation sends
- rsvp: Public RSVP and open tracking
- payments: Stripe checkout/webhook, balances and purchase history
"""
from .health import router as health_router
from .events import router as events_router
from .rsvp import router as rsvp_router
from .payments import router as payments_router

__all__ = ['health_router', 'events_router', 'rsvp_router', 'payments_router']

"""
Application configuration and constants
"""
import os
from pathlib import Path
from dotenv import load_dotenv
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Database
MONGO_URL = os.environ['MONGO_URL']
DB_NAME = os.environ['DB_NAME']

# Auth service shared secret (tokens are HS256 JWTs issued by the auth provider)
SECRET_KEY = os.environ['JWT_SECRET_KEY']
ALGORITHM = 'HS256'

# Stripe configuration
STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', '')
STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET', '')

# Email configuration
RESEND_API_KEY = os.environ.get('RESEND_API_KEY', '')
SENDER_EMAIL = os.environ.get('SENDER_EMAIL', 'Invitations <noreply@example.com>')

FRONTEND_PUBLIC_URL = os.environ.get('FRONTEND_PUBLIC_URL', 'http://localhost:3000').rstrip('/')
# Base URL of this API as seen by email clients (tracking pixel)
PUBLIC_API_URL = os.environ.get('PUBLIC_API_URL', 'http://localhost:8001').rstrip('/')
CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', 'http://localhost:3000').split(',') if o.strip()]

# Background reconciliation of purchases whose balance/event step did not apply (seconds)
RECONCILE_INTERVAL = int(os.environ.get('RECONCILE_INTERVAL', 300))
RECONCILE_BATCH_SIZE = 100

# Pause between bulk invitation sends when there are more than BULK_SEND_THROTTLE_AFTER guests
BULK_SEND_DELAY = float(os.environ.get('BULK_SEND_DELAY', 0.1))
BULK_SEND_THROTTLE_AFTER = 5

# ============================================
# INVITATION CREDIT CONSTANTS
# ============================================

# Product types (prefix of events.invitation_type, e.g. "email:classic")
PRODUCT_EMAIL = "email"
PRODUCT_URL = "url"
DEFAULT_PRODUCT_TYPE = "standard"
DEFAULT_CURRENCY = "eur"

# Event statuses
EVENT_DRAFT = "draft"
EVENT_PENDING = "pending"
EVENT_PUBLISHED = "published"

# Guest email statuses
EMAIL_QUEUED = "queued"
EMAIL_SENT = "sent"
EMAIL_OPENED = "opened"
EMAIL_COMPLETED = "completed"
EMAIL_FAILED = "failed"

# Availability accounting modes
ACCOUNTING_RESERVATION = "reservation"  # purchased - sum(max_guests of published events)
ACCOUNTING_USAGE = "usage"  # purchased - used

# Purchase saga steps (flags on invitation_purchases)
STEP_BALANCE = "balance_applied"
STEP_EVENT = "event_applied"

# Stripe webhook event that finalizes a purchase
CHECKOUT_COMPLETED = "checkout.session.completed"

# Event fields owners may set on create/patch
EVENT_ALLOWED_FIELDS = [
    "title_text",
    "event_date",
    "event_time",
    "location",
    "notes",
    "design_json",
    "max_guests",
    "invitation_type",
]

# Event fields exposed on the public (guest facing) page
EVENT_PUBLIC_FIELDS = [
    "id",
    "title_text",
    "event_date",
    "event_time",
    "location",
    "notes",
    "status",
    "design_json",
    "max_guests",
    "invitation_type",
]

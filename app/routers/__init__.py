# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - generate.py: Thumbnail generation
# - thumbnails.py: Thumbnail gallery CRUD
# - experiments.py: A/B/C experiments and variants
# - youtube.py: YouTube connection (OAuth) and channel data
# - subscriptions.py: Subscription summary, billing actions, credit history and tiers
# - webhooks.py: Stripe webhook ingestion
# - notifications.py: Internal notification creation
# - account.py: Account overview
# - cron.py: Scheduled job triggers
# - tasks.py: Background task status
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import generate
from . import thumbnails
from . import experiments
from . import youtube
from . import subscriptions
from . import webhooks
from . import notifications
from . import account
from . import cron
from . import tasks

__all__ = [
    "health",
    "generate",
    "thumbnails",
    "experiments",
    "youtube",
    "subscriptions",
    "webhooks",
    "notifications",
    "account",
    "cron",
    "tasks",
]

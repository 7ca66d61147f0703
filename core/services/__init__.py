# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .storage_service import StorageService
from .notification_service import NotificationService
from .subscription_service import SubscriptionService
from .billing_service import BillingService
from .generation_service import GenerationService
from .thumbnail_service import ThumbnailService
from .experiment_service import ExperimentService
from .youtube_oauth_service import YouTubeOAuthService, OAuthCallbackError
from .youtube_service import YouTubeService
from .webhook_service import WebhookService
from .account_service import AccountService

__all__ = [
    "StorageService",
    "NotificationService",
    "SubscriptionService",
    "BillingService",
    "GenerationService",
    "ThumbnailService",
    "ExperimentService",
    "YouTubeOAuthService",
    "OAuthCallbackError",
    "YouTubeService",
    "WebhookService",
    "AccountService",
]

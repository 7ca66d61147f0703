# =============================================================================
# core/models/ - Pydantic Data Models
# =============================================================================
# This package contains Pydantic schemas for data validation:
# - subscription.py: Tiers, resolutions, derived subscription status
# - generation.py: Thumbnail generation request/response
# - thumbnail.py: Thumbnail gallery schemas
# - experiment.py: Experiments and A/B/C variants
# - youtube.py: YouTube connection and video schemas
# - notification.py: Notification creation schema
#
# These models define the "contract" between API and clients.
# =============================================================================

# -----------------------------------------------------------------------------
# Subscription Models - Tiers and billing state
# -----------------------------------------------------------------------------
from .subscription import (
    ALL_ASPECT_RATIOS,
    ASPECT_RATIOS_BY_TIER,
    FREE_TIER,
    RESOLUTION_CREDITS,
    AppSubscriptionStatus,
    CheckoutRequest,
    PortalFlow,
    Resolution,
    SubscriptionAction,
    SubscriptionActionRequest,
    SubscriptionSummary,
    TierConfig,
    TierName,
)

# -----------------------------------------------------------------------------
# Generation Models
# -----------------------------------------------------------------------------
from .generation import (
    GenerateRequest,
    GenerateResponse,
    VariationResult,
)

# -----------------------------------------------------------------------------
# Thumbnail Models
# -----------------------------------------------------------------------------
from .thumbnail import (
    ThumbnailList,
    ThumbnailOrderBy,
    ThumbnailUpdate,
)

# -----------------------------------------------------------------------------
# Experiment Models
# -----------------------------------------------------------------------------
from .experiment import (
    ExperimentCreate,
    ExperimentStatus,
    ExperimentUpdate,
    VariantGenerateRequest,
    VariantLabel,
    VariantUpdate,
)

# -----------------------------------------------------------------------------
# YouTube Models
# -----------------------------------------------------------------------------
from .youtube import (
    DisconnectRequest,
    VideosPage,
    YouTubeStatus,
    YouTubeVideo,
)

# -----------------------------------------------------------------------------
# Notification Models
# -----------------------------------------------------------------------------
from .notification import (
    NotificationCreate,
    NotificationSeverity,
    NotificationType,
)

__all__ = [
    # Subscription
    "ALL_ASPECT_RATIOS",
    "ASPECT_RATIOS_BY_TIER",
    "FREE_TIER",
    "RESOLUTION_CREDITS",
    "AppSubscriptionStatus",
    "CheckoutRequest",
    "PortalFlow",
    "Resolution",
    "SubscriptionAction",
    "SubscriptionActionRequest",
    "SubscriptionSummary",
    "TierConfig",
    "TierName",
    # Generation
    "GenerateRequest",
    "GenerateResponse",
    "VariationResult",
    # Thumbnail
    "ThumbnailList",
    "ThumbnailOrderBy",
    "ThumbnailUpdate",
    # Experiment
    "ExperimentCreate",
    "ExperimentStatus",
    "ExperimentUpdate",
    "VariantGenerateRequest",
    "VariantLabel",
    "VariantUpdate",
    # YouTube
    "DisconnectRequest",
    "VideosPage",
    "YouTubeStatus",
    "YouTubeVideo",
    # Notification
    "NotificationCreate",
    "NotificationSeverity",
    "NotificationType",
]

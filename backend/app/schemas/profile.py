from typing import Optional

from app.models import SubscriptionTier
from app.schemas.base import Snapshot, UtcDatetime


class Profile(Snapshot):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    created_at: UtcDatetime

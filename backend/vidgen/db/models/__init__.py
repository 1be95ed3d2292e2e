"""Re-export all models so Base.metadata sees them."""

from vidgen.db.models.provider_key import ProviderKey
from vidgen.db.models.rotation_settings import RotationSettings
from vidgen.db.models.user import User

__all__ = [
    "ProviderKey",
    "RotationSettings",
    "User",
]

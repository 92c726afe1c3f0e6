from .claimed_photos import ClaimedPhotosRepository, SessionClaimedStore
from .neighborhood import NeighborhoodRepository, SessionNeighborhoodConfig
from . import models

__all__ = [
    "ClaimedPhotosRepository",
    "SessionClaimedStore",
    "NeighborhoodRepository",
    "SessionNeighborhoodConfig",
    "models",
]

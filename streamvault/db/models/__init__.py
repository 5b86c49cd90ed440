from streamvault.db.models.series import Series
from streamvault.db.models.episode import (
    EPISODE_STATUS_COMMITTED,
    EPISODE_STATUS_PROVISIONAL,
    Episode,
)

__all__ = ["Series", "Episode", "EPISODE_STATUS_COMMITTED", "EPISODE_STATUS_PROVISIONAL"]

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

# Zero timestamp: nothing pushed yet / nothing observed yet
ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class WatchConfig:
    """Resolved configuration for a single watched repository."""
    repository: str
    tag_pattern: re.Pattern
    interval: float = 30.0  # seconds
    region: str = "us-east-1"
    profile: Optional[str] = None
    registry_id: Optional[str] = None


@dataclass
class ImageDetail:
    """Push time and tags of one image digest."""
    digest: Optional[str]
    pushed_at: datetime
    tags: List[str] = field(default_factory=list)


@dataclass
class WatchState:
    """The only state carried across poll cycles."""
    most_recent_pushed_at: datetime = ZERO_TIME
    most_recent_tags: List[str] = field(default_factory=list)
    # False until the first poll has been recorded; a first poll that matched
    # nothing still counts as the baseline
    primed: bool = False

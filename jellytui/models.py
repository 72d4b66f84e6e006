"""Data models for Jellyfin catalog items and sessions."""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timedelta
from typing import List, Optional

TICKS_PER_SECOND = 10_000_000


def ticks_to_seconds(ticks: int) -> int:
    """Convert 100-nanosecond ticks to whole seconds."""
    return ticks // TICKS_PER_SECOND


def seconds_to_ticks(seconds: float) -> int:
    """Convert (fractional) seconds to ticks."""
    return int(seconds * TICKS_PER_SECOND)


@dataclass(frozen=True)
class MediaItem:
    """Represents a movie, series or episode from the Jellyfin catalog."""

    id: str
    name: str
    item_type: str  # "Movie", "Series" or "Episode"
    path: Optional[str] = None
    year: Optional[int] = None
    overview: Optional[str] = None
    community_rating: Optional[float] = None
    critic_rating: Optional[int] = None
    runtime_ticks: Optional[int] = None

    # Episode-specific fields
    series_id: Optional[str] = None
    series_name: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None

    @property
    def is_episode(self) -> bool:
        return self.item_type == "Episode"

    @property
    def is_series(self) -> bool:
        return self.item_type == "Series"

    def display_title(self) -> str:
        """Title shown in listings and forced onto the player window."""
        if self.is_episode:
            return (
                f"{self.series_name or 'Unknown Series'} - "
                f"S{self.season_number or 0:02d}E{self.episode_number or 0:02d}"
                f" - {self.name}"
            )
        if self.year:
            return f"{self.name} ({self.year})"
        return self.name

    def format_runtime(self) -> str:
        if self.runtime_ticks is None:
            return "Unknown runtime"

        total_minutes = self.runtime_ticks // (TICKS_PER_SECOND * 60)
        hours, minutes = divmod(total_minutes, 60)
        if hours > 0:
            return f"{hours}h {minutes}m"
        return f"{minutes}m"

    def format_end_time(self, now: Optional[datetime] = None) -> str:
        """Wall-clock time at which playback would end if started now."""
        if self.runtime_ticks is None:
            return "Unknown runtime"

        now = now or datetime.now()
        end = now + timedelta(seconds=ticks_to_seconds(self.runtime_ticks))
        return end.strftime("%H:%M")

    def to_dict(self) -> dict:
        """Convert to dictionary for the catalog cache."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "MediaItem":
        """Reconstruct from a catalog cache record."""
        return cls(**data)

    @classmethod
    def from_api(cls, raw: dict) -> "MediaItem":
        """Parse a Jellyfin API item."""
        return cls(
            id=raw["Id"],
            name=raw.get("Name", ""),
            item_type=raw.get("Type", ""),
            path=raw.get("Path"),
            year=raw.get("ProductionYear"),
            overview=raw.get("Overview"),
            community_rating=raw.get("CommunityRating"),
            critic_rating=raw.get("CriticRating"),
            runtime_ticks=raw.get("RunTimeTicks"),
            series_id=raw.get("SeriesId"),
            series_name=raw.get("SeriesName"),
            season_number=raw.get("ParentIndexNumber"),
            episode_number=raw.get("IndexNumber"),
        )


@dataclass
class UserPreferences:
    """Playback preferences stored on the user's Jellyfin account."""

    audio_language: Optional[str] = None
    play_default_audio_track: bool = True
    subtitle_language: str = ""

    @classmethod
    def from_api(cls, raw: dict) -> "UserPreferences":
        return cls(
            audio_language=raw.get("AudioLanguagePreference") or None,
            play_default_audio_track=raw.get("PlayDefaultAudioTrack", True),
            subtitle_language=raw.get("SubtitleLanguagePreference") or "",
        )


@dataclass
class Credentials:
    """Result of a successful authentication."""

    access_token: str
    user_id: str
    preferences: UserPreferences = field(default_factory=UserPreferences)


@dataclass
class HomeSections:
    """The curated lists shown outside full catalog browsing."""

    resume: List[MediaItem] = field(default_factory=list)
    next_up: List[MediaItem] = field(default_factory=list)
    latest: List[MediaItem] = field(default_factory=list)

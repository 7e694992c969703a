"""Entities for external playlist import and fingerprint matching."""

from dataclasses import dataclass
from enum import Enum

# Sentinel score for user-picked candidates. Scoring is bypassed entirely for these,
# so the number only has to be the top of the scale - check MatchResult.manual instead.
MANUAL_MATCH_SCORE = 1.0


@dataclass(frozen=True)
class ExternalTrack:
    """Track as described by a third-party catalog (NetEase, QQ Music).

    There is no id we can use on the remote platform - only title, artists and
    duration. duration_ms is None when the catalog doesn't expose it.
    """

    title: str
    artists: tuple[str, ...] = ()
    album: str | None = None
    artist: str | None = None
    duration_ms: int | None = None

    @property
    def duration(self) -> float | None:
        """Duration in seconds."""
        if self.duration_ms is None or self.duration_ms <= 0:
            return None
        return self.duration_ms / 1000

    @property
    def artist_line(self) -> str:
        return " ".join(self.artists)


@dataclass(frozen=True)
class ExternalPlaylist:
    """Header and tracks of a third-party playlist."""

    id: str
    title: str
    platform: str
    description: str = ""
    cover_url: str | None = None
    author: str | None = None
    tracks: tuple[ExternalTrack, ...] = ()

    @property
    def track_count(self) -> int:
        return len(self.tracks)


@dataclass(frozen=True)
class RemoteCandidate:
    """One search hit on the remote platform."""

    id: str
    title: str
    duration: float | None = None  # seconds
    artist: str | None = None
    # Platform section the hit was filed under (upload zone, channel...), if known
    category: str | None = None


class MatchStatus(str, Enum):
    """Outcome of matching one external track."""

    MATCHED = "matched"
    AMBIGUOUS = "ambiguous"
    UNMATCHED = "unmatched"


@dataclass(frozen=True)
class MatchCandidate:
    """Scored candidate. Transient - only the chosen one survives in MatchResult."""

    candidate: RemoteCandidate
    score: float
    title_score: float
    duration_score: float | None
    rank: int  # position in the upstream search results
    duration_delta: float | None = None  # |source - candidate| in seconds


@dataclass(frozen=True)
class MatchResult:
    """Match outcome for one externally-imported track."""

    source_track: ExternalTrack
    best_candidate: RemoteCandidate | None
    score: float
    status: MatchStatus
    candidates: tuple[MatchCandidate, ...] = ()
    error: str | None = None
    manual: bool = False

    @property
    def is_usable(self) -> bool:
        """True when the result can be enqueued as-is."""
        return self.status == MatchStatus.MATCHED and self.best_candidate is not None

# Hey future me - this is the "bring your NetEase/QQ playlist over" flow!
#
# 1. fetch the third-party playlist (header + tracks, no usable ids)
# 2. for EACH track: search the remote platform, let the TrackMatcher pick a hit
# 3. yield one ImportProgress per track so the caller can show progress live
#
# Searches are throttled to one per 1.2s - the remote platform bans accounts that
# hammer its search endpoint. Don't lower search_interval_ms without a reason!
#
# Nothing is written here. The caller reviews the results and hands them to
# PlaylistService.save_import(), which enqueues the add_tracks entry.
"""External playlist importer - fetch a third-party playlist and match every track."""

import logging
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass

from playmirror.application.services.track_matcher import TrackMatcher, clean_title
from playmirror.config import ImporterSettings
from playmirror.domain.entities import (
    ExternalPlaylist,
    ExternalTrack,
    MatchResult,
    MatchStatus,
)
from playmirror.domain.exceptions import ConfigurationError, ValidationError
from playmirror.domain.ports import IExternalPlaylistSource, IRemotePlaylistApi
from playmirror.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportProgress:
    """One matched track. current is 1-based."""

    current: int
    total: int
    result: MatchResult


class ExternalPlaylistImporter:
    """Fetches third-party playlists and matches their tracks on the remote platform."""

    def __init__(
        self,
        sources: Iterable[IExternalPlaylistSource],
        remote_api: IRemotePlaylistApi,
        matcher: TrackMatcher | None = None,
        settings: ImporterSettings | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._sources = {source.platform: source for source in sources}
        if not self._sources:
            raise ConfigurationError("No external playlist source registered")
        self._remote_api = remote_api
        self._matcher = matcher or TrackMatcher()
        self._settings = settings or ImporterSettings()
        self._rate_limiter = rate_limiter or RateLimiter.for_interval(
            self._settings.search_interval_ms, name="search"
        )

    @property
    def platforms(self) -> list[str]:
        return sorted(self._sources)

    def _source_for(self, platform: str) -> IExternalPlaylistSource:
        source = self._sources.get(platform)
        if source is None:
            raise ValidationError(
                f"Unsupported platform '{platform}' (supported: {', '.join(self.platforms)})"
            )
        return source

    async def fetch_playlist(self, source_id: str, platform: str) -> ExternalPlaylist:
        """Playlist header and tracks from the third-party catalog."""
        if not source_id or not source_id.strip():
            raise ValidationError("Playlist id cannot be empty")
        return await self._source_for(platform).fetch_playlist(source_id.strip())

    def build_query(self, track: ExternalTrack) -> str:
        """Search query for one track: "cleaned title - artists" or just the cleaned title.

        A title with nothing left after cleaning (all punctuation) is sent as-is.
        """
        title = clean_title(track.title) or track.title.strip()
        if self._settings.include_artist_in_query and track.artists:
            return f"{title} - {track.artist_line}"
        return title

    def import_playlist(self, source_id: str, platform: str) -> AsyncIterator[ImportProgress]:
        """Fetch a playlist and match it track by track.

        Not a coroutine on purpose: an unknown platform raises ValidationError right
        here, before anything is fetched.

        Usage:
            async for progress in importer.import_playlist("12345", "netease"):
                print(progress.current, progress.total, progress.result.status)
        """
        self._source_for(platform)
        return self._import(source_id, platform)

    async def _import(self, source_id: str, platform: str) -> AsyncIterator[ImportProgress]:
        playlist = await self.fetch_playlist(source_id, platform)
        logger.info(
            f"Importing {platform} playlist '{playlist.title}' ({playlist.track_count} tracks)"
        )
        async for progress in self.match_tracks(playlist.tracks):
            yield progress

    async def match_tracks(self, tracks: Iterable[ExternalTrack]) -> AsyncIterator[ImportProgress]:
        """Search + match each track. A failing track never stops the others."""
        track_list = list(tracks)
        total = len(track_list)
        matched = 0

        for index, track in enumerate(track_list, start=1):
            result = await self._match_one(track)
            if result.status == MatchStatus.MATCHED:
                matched += 1
            yield ImportProgress(current=index, total=total, result=result)

        logger.info(f"Import matching finished: {matched}/{total} matched")

    async def _match_one(self, track: ExternalTrack) -> MatchResult:
        query = self.build_query(track)
        try:
            async with self._rate_limiter:
                candidates = await self._remote_api.search(query)
        except Exception as e:
            # Per-track isolation: record it and move on to the next track
            logger.warning(f"Search failed for '{track.title}': {e}")
            return MatchResult(
                source_track=track,
                best_candidate=None,
                score=0.0,
                status=MatchStatus.UNMATCHED,
                error=str(e) or type(e).__name__,
            )
        return self._matcher.match(track, candidates)

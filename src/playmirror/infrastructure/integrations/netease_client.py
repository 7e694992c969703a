"""NetEase Cloud Music playlist client.

Hey future me - we only READ public playlists here, no login needed. The v6
detail endpoint returns the header plus up to n tracks in one call; `dt` is the
duration in MILLISECONDS and `ar` the artist list.

Response shape (trimmed):
    {"code": 200, "playlist": {"id": 1, "name": "...", "coverImgUrl": "...",
     "description": null, "trackCount": 2, "creator": {"nickname": "..."},
     "tracks": [{"name": "...", "ar": [{"name": "..."}], "al": {"name": "..."}, "dt": 203000}]}}
"""

from __future__ import annotations

import logging
from typing import Any

from playmirror.domain.entities import ExternalPlaylist, ExternalTrack
from playmirror.domain.exceptions import EntityNotFoundException, ExternalServiceError
from playmirror.domain.ports import IExternalPlaylistSource
from playmirror.infrastructure.integrations.base import CatalogHttpClient

logger = logging.getLogger(__name__)


class NeteaseClient(CatalogHttpClient, IExternalPlaylistSource):
    """Fetch NetEase playlists as ExternalPlaylist."""

    platform = "netease"
    service_name = "NetEase"
    base_url = "https://music.163.com"
    default_headers = {"Referer": "https://music.163.com/"}

    # Max tracks the detail endpoint returns per call
    MAX_TRACKS = 1000

    async def fetch_playlist(self, playlist_id: str) -> ExternalPlaylist:
        data = await self._get_json(
            "/api/v6/playlist/detail",
            params={"id": playlist_id, "n": str(self.MAX_TRACKS), "s": "0", "t": "0"},
        )

        code = data.get("code") if isinstance(data, dict) else None
        if code == 404:
            raise EntityNotFoundException("NeteasePlaylist", playlist_id)
        if code != 200 or not isinstance(data.get("playlist"), dict):
            raise ExternalServiceError(
                f"NetEase returned code {code} for playlist {playlist_id}",
                service=self.service_name,
            )

        playlist = self._parse_playlist(data["playlist"], playlist_id)
        logger.info(
            f"Fetched NetEase playlist '{playlist.title}' ({playlist.track_count} tracks)"
        )
        return playlist

    @staticmethod
    def _parse_track(raw: dict[str, Any]) -> ExternalTrack:
        return ExternalTrack(
            title=raw.get("name") or "",
            artists=tuple(
                artist.get("name", "") for artist in raw.get("ar") or [] if artist.get("name")
            ),
            album=(raw.get("al") or {}).get("name"),
            duration_ms=raw.get("dt"),
        )

    def _parse_playlist(self, raw: dict[str, Any], playlist_id: str) -> ExternalPlaylist:
        creator = raw.get("creator") or {}
        return ExternalPlaylist(
            id=str(raw.get("id", playlist_id)),
            title=raw.get("name") or "Unknown",
            platform=self.platform,
            description=raw.get("description") or "",
            cover_url=raw.get("coverImgUrl"),
            author=creator.get("nickname"),
            tracks=tuple(self._parse_track(track) for track in raw.get("tracks") or []),
        )

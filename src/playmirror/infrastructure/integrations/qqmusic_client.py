"""QQ Music playlist client.

Unlike NetEase, `interval` is the duration in SECONDS and an unknown playlist id is
not an HTTP error - `cdlist` just comes back empty.
"""

from __future__ import annotations

import logging
from typing import Any

from playmirror.domain.entities import ExternalPlaylist, ExternalTrack
from playmirror.domain.exceptions import EntityNotFoundException, ExternalServiceError
from playmirror.domain.ports import IExternalPlaylistSource
from playmirror.infrastructure.integrations.base import CatalogHttpClient

logger = logging.getLogger(__name__)


class QQMusicClient(CatalogHttpClient, IExternalPlaylistSource):
    """Fetch QQ Music playlists as ExternalPlaylist."""

    platform = "qq"
    service_name = "QQ Music"
    base_url = "https://c.y.qq.com"
    default_headers = {"Referer": "http://y.qq.com"}

    async def fetch_playlist(self, playlist_id: str) -> ExternalPlaylist:
        data = await self._get_json(
            "/v8/fcg-bin/fcg_v8_playlist_cp.fcg",
            params={
                "id": playlist_id,
                "format": "json",
                "newsong": "1",
                "platform": "jqspaframe.json",
            },
        )
        if not isinstance(data, dict):
            raise ExternalServiceError(
                f"QQ Music returned an unexpected body for playlist {playlist_id}",
                service=self.service_name,
            )

        cdlist = (data.get("data") or {}).get("cdlist") or []
        if not cdlist:
            raise EntityNotFoundException("QQMusicPlaylist", playlist_id)

        playlist = self._parse_playlist(cdlist[0], playlist_id)
        logger.info(
            f"Fetched QQ Music playlist '{playlist.title}' ({playlist.track_count} tracks)"
        )
        return playlist

    @staticmethod
    def _parse_track(raw: dict[str, Any]) -> ExternalTrack:
        interval = raw.get("interval")
        return ExternalTrack(
            title=raw.get("name") or "",
            artists=tuple(
                singer.get("name", "") for singer in raw.get("singer") or [] if singer.get("name")
            ),
            album=(raw.get("album") or {}).get("name"),
            duration_ms=int(interval * 1000) if interval else None,
        )

    def _parse_playlist(self, raw: dict[str, Any], playlist_id: str) -> ExternalPlaylist:
        return ExternalPlaylist(
            id=playlist_id,
            title=raw.get("dissname") or "Unknown",
            platform=self.platform,
            description=raw.get("desc") or "",
            cover_url=raw.get("logo"),
            author=raw.get("nickname"),
            tracks=tuple(self._parse_track(song) for song in raw.get("songlist") or []),
        )

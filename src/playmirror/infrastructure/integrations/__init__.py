"""Third-party catalog clients."""

from playmirror.infrastructure.integrations.base import CatalogHttpClient
from playmirror.infrastructure.integrations.netease_client import NeteaseClient
from playmirror.infrastructure.integrations.qqmusic_client import QQMusicClient

__all__ = [
    "CatalogHttpClient",
    "NeteaseClient",
    "QQMusicClient",
]

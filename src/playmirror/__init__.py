"""PlayMirror - keeps local playlists mirrored to a remote platform."""

__version__ = "0.1.0"

"""Video-source data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.ingestion.models import TranscriptData


@dataclass(frozen=True)
class VideoInfo:
    video_id: str
    title: str
    url: str
    duration_minutes: int = 0
    has_captions: bool = False
    published_at: str | None = None
    thumbnail_url: str | None = None
    view_count: int | None = None


@dataclass(frozen=True)
class ChannelInfo:
    """Channel metadata as returned by a :class:`VideoSource`.

    ``background_summary`` is left empty by :class:`YouTubeVideoSource`. It is
    filled by a source that enriches channels from an external knowledge
    base; when set, it is stored as a ``background_summary`` context chunk.
    """

    channel_id: str
    title: str
    description: str = ""
    thumbnail_url: str | None = None
    subscriber_count: int | None = None
    background_summary: str | None = None
    background_topics: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ChannelVideos:
    channel: ChannelInfo
    videos: list[VideoInfo]


class VideoSource(Protocol):
    async def list_channel_videos(self, channel_ref: str, max_videos: int) -> ChannelVideos: ...

    async def get_channel_info(self, channel_ref: str) -> ChannelInfo: ...

    async def get_transcript(self, video_id: str) -> TranscriptData | None: ...

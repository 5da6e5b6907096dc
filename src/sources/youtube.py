"""YouTube video source: channel listing via the Data API, captions via youtube-transcript-api."""

from __future__ import annotations

import asyncio
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import unquote

from googleapiclient.discovery import build
from youtube_transcript_api import YouTubeTranscriptApi
from youtube_transcript_api._errors import (
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
)

from src.config import settings
from src.errors import NonRetryableProviderError
from src.ingestion.models import TranscriptData
from src.ingestion.parsers import segments_from_snippets
from src.resilience import call_external
from src.sources.models import ChannelInfo, ChannelVideos, VideoInfo

logger = logging.getLogger(__name__)

CHANNEL_ID_RE = re.compile(r"^UC[a-zA-Z0-9_-]{22}$")
_DURATION_RE = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")
_URL_PATTERNS: list[tuple[re.Pattern[str], bool]] = [
    (re.compile(r"(?:https?://)?(?:www\.)?youtube\.com/@([^/?&\s]+)"), True),
    (re.compile(r"(?:https?://)?(?:www\.)?youtube\.com/channel/([^/?&\s]+)"), False),
    (re.compile(r"(?:https?://)?(?:www\.)?youtube\.com/c/([^/?&\s]+)"), False),
    (re.compile(r"(?:https?://)?(?:www\.)?youtube\.com/user/([^/?&\s]+)"), False),
]

# The Data API caps playlistItems and videos pages at 50.
PAGE_SIZE = 50
CHANNEL_PARTS = "snippet,contentDetails,statistics,topicDetails"
TRANSCRIPT_LANGUAGES = ["en", "en-US", "en-GB"]


@dataclass(frozen=True)
class ChannelRef:
    kind: Literal["id", "handle", "name"]
    value: str


def parse_channel_ref(channel_input: str) -> ChannelRef:
    """Classify a channel id, ``@handle`` or channel URL."""
    text = channel_input.strip()
    if CHANNEL_ID_RE.match(text):
        return ChannelRef("id", text)

    for pattern, is_handle in _URL_PATTERNS:
        match = pattern.search(text)
        if match:
            value = unquote(match.group(1))
            if is_handle:
                return ChannelRef("handle", value)
            if CHANNEL_ID_RE.match(value):
                return ChannelRef("id", value)
            return ChannelRef("name", value)

    if text.startswith("@"):
        return ChannelRef("handle", text[1:])
    return ChannelRef("name", text)


def parse_duration_minutes(duration: str) -> int:
    """ISO-8601 ``PT#H#M#S`` to whole minutes, rounding leftover seconds up."""
    match = _DURATION_RE.match(duration or "")
    if not match:
        return 0
    hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return hours * 60 + minutes + (1 if seconds > 0 else 0)


def _topic_name(topic_url: str) -> str:
    return unquote(topic_url.rsplit("/", 1)[-1]).replace("_", " ")


def _thumbnail(snippet: dict[str, Any]) -> str | None:
    thumbs = snippet.get("thumbnails") or {}
    for size in ("medium", "high", "default"):
        if size in thumbs:
            return thumbs[size].get("url")
    return None


def _channel_info(item: dict[str, Any]) -> ChannelInfo:
    snippet = item.get("snippet") or {}
    stats = item.get("statistics") or {}
    topics = (item.get("topicDetails") or {}).get("topicCategories") or []
    return ChannelInfo(
        channel_id=item["id"],
        title=snippet.get("title", ""),
        description=snippet.get("description", ""),
        thumbnail_url=_thumbnail(snippet),
        subscriber_count=int(stats["subscriberCount"]) if stats.get("subscriberCount") else None,
        background_topics=[_topic_name(t) for t in topics],
    )


def _video_info(item: dict[str, Any]) -> VideoInfo:
    snippet = item.get("snippet") or {}
    details = item.get("contentDetails") or {}
    stats = item.get("statistics") or {}
    video_id = item["id"]
    return VideoInfo(
        video_id=video_id,
        title=snippet.get("title") or f"Video {video_id}",
        url=f"https://www.youtube.com/watch?v={video_id}",
        duration_minutes=parse_duration_minutes(details.get("duration", "PT0S")),
        has_captions=details.get("caption") == "true",
        published_at=snippet.get("publishedAt"),
        thumbnail_url=_thumbnail(snippet),
        view_count=int(stats["viewCount"]) if stats.get("viewCount") else None,
    )


class YouTubeVideoSource:
    """Video source backed by the YouTube Data API v3.

    The Google client and the transcript API are synchronous; calls run in a
    worker thread under the ``youtube`` retry and timeout policy.
    """

    def __init__(
        self,
        api_key: str | None = None,
        service: Any = None,
        transcript_api: YouTubeTranscriptApi | None = None,
        min_duration: int | None = None,
        max_duration: int | None = None,
    ) -> None:
        self._api_key = api_key or settings.youtube_api_key
        self._service = service
        self._transcripts = transcript_api
        self.min_duration = min_duration or settings.min_duration_minutes
        self.max_duration = max_duration or settings.max_duration_minutes

    @property
    def service(self) -> Any:
        if self._service is None:
            self._service = build(
                "youtube", "v3", developerKey=self._api_key, cache_discovery=False
            )
        return self._service

    @property
    def transcripts(self) -> YouTubeTranscriptApi:
        if self._transcripts is None:
            self._transcripts = YouTubeTranscriptApi()
        return self._transcripts

    async def _call(self, request: Any, context: str) -> dict[str, Any]:
        return await call_external(lambda: asyncio.to_thread(request.execute), "youtube", context)

    async def _resolve_channel(self, ref: ChannelRef) -> dict[str, Any]:
        channels = self.service.channels()
        if ref.kind == "id":
            request = channels.list(part=CHANNEL_PARTS, id=ref.value)
        elif ref.kind == "handle":
            request = channels.list(part=CHANNEL_PARTS, forHandle=ref.value)
        else:
            found = await self._call(
                self.service.search().list(part="snippet", q=ref.value, type="channel", maxResults=1),
                f"search channel {ref.value}",
            )
            items = found.get("items") or []
            channel_id = items[0].get("snippet", {}).get("channelId") if items else None
            if not channel_id:
                raise NonRetryableProviderError(f"Channel not found: {ref.value}")
            request = channels.list(part=CHANNEL_PARTS, id=channel_id)

        response = await self._call(request, f"channel {ref.kind}:{ref.value}")
        items = response.get("items") or []
        if not items:
            raise NonRetryableProviderError(f"Channel not found: {ref.value}")
        return items[0]

    async def get_channel_info(self, channel_ref: str | ChannelRef) -> ChannelInfo:
        ref = channel_ref if isinstance(channel_ref, ChannelRef) else parse_channel_ref(channel_ref)
        return _channel_info(await self._resolve_channel(ref))

    async def _upload_ids(self, playlist_id: str, wanted: int) -> list[str]:
        ids: list[str] = []
        page_token: str | None = None
        while len(ids) < wanted:
            response = await self._call(
                self.service.playlistItems().list(
                    part="contentDetails",
                    playlistId=playlist_id,
                    maxResults=min(PAGE_SIZE, wanted - len(ids)),
                    pageToken=page_token,
                ),
                f"uploads {playlist_id}",
            )
            for item in response.get("items") or []:
                video_id = (item.get("contentDetails") or {}).get("videoId")
                if video_id:
                    ids.append(video_id)
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return ids

    async def _video_details(self, video_ids: list[str]) -> list[VideoInfo]:
        videos: list[VideoInfo] = []
        for start in range(0, len(video_ids), PAGE_SIZE):
            batch = video_ids[start : start + PAGE_SIZE]
            response = await self._call(
                self.service.videos().list(
                    part="snippet,contentDetails,statistics", id=",".join(batch)
                ),
                f"video details ({len(batch)})",
            )
            videos.extend(_video_info(item) for item in response.get("items") or [])
        return videos

    async def list_channel_videos(
        self, channel_ref: str | ChannelRef, max_videos: int | None = None
    ) -> ChannelVideos:
        """Up to *max_videos* in-band videos, captioned ones first.

        Over-fetches uploads to make up for videos dropped by the duration
        filter.
        """
        max_videos = max_videos or settings.default_max_videos
        ref = channel_ref if isinstance(channel_ref, ChannelRef) else parse_channel_ref(channel_ref)
        item = await self._resolve_channel(ref)
        channel = _channel_info(item)

        uploads = ((item.get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
        if not uploads:
            raise NonRetryableProviderError(f"Channel uploads playlist not found: {channel.title}")

        wanted = max(math.ceil(max_videos * 2.5), PAGE_SIZE)
        all_videos = await self._video_details(await self._upload_ids(uploads, wanted))

        in_band = [
            v for v in all_videos if self.min_duration <= v.duration_minutes <= self.max_duration
        ]
        captioned = [v for v in in_band if v.has_captions]
        uncaptioned = [v for v in in_band if not v.has_captions]
        videos = (captioned + uncaptioned)[:max_videos]

        logger.info(
            "Channel %s: %d uploads fetched, %d in %d-%d min band, %d selected (%d captioned)",
            channel.title,
            len(all_videos),
            len(in_band),
            self.min_duration,
            self.max_duration,
            len(videos),
            sum(1 for v in videos if v.has_captions),
        )
        return ChannelVideos(channel=channel, videos=videos)

    def _fetch_snippets(self, video_id: str) -> list[dict[str, Any]] | None:
        try:
            fetched = self.transcripts.fetch(video_id, languages=TRANSCRIPT_LANGUAGES)
        except (NoTranscriptFound, TranscriptsDisabled):
            return None
        except VideoUnavailable as exc:
            raise NonRetryableProviderError(f"Video unavailable: {video_id}") from exc
        return fetched.to_raw_data()

    async def get_transcript(self, video_id: str) -> TranscriptData | None:
        """Transcript text and timed segments, or ``None`` without captions."""
        snippets = await call_external(
            lambda: asyncio.to_thread(self._fetch_snippets, video_id),
            "youtube",
            f"transcript {video_id}",
        )
        if not snippets:
            logger.warning("No transcript available for video %s", video_id)
            return None
        segments = segments_from_snippets(snippets)
        text = " ".join(s.text for s in segments)
        if not text.strip():
            return None
        return TranscriptData(text=text, segments=segments)

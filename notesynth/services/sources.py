"""
Content Sources

A content source resolves an item id to its title and raw caption text. The
batch dispatcher fetches content per item inside that item's own task, so a
failing fetch only affects that item (it becomes a SOURCE_FETCH_FAILED
Result and no provider is called for it).

Sources:
- StaticContentSource: in-memory mapping, for callers that already hold text
- YouTubeTranscriptSource: public YouTube captions via youtube-transcript-api

Usage:
    source = YouTubeTranscriptSource(languages=("en",))
    async for result in dispatcher.process_ids(["dQw4w9WgXcQ"], source):
        ...
"""

import asyncio
import logging
import re
from typing import Mapping, Optional, Protocol, Sequence

from youtube_transcript_api import YouTubeTranscriptApi

from notesynth.models.dispatch import SourceContent
from notesynth.services.errors import SourceFetchError

logger = logging.getLogger(__name__)

YOUTUBE_URL_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&\n?#]+)"),
    re.compile(r"youtube\.com/v/([^&\n?#]+)"),
    re.compile(r"youtube\.com/watch\?.*v=([^&\n?#]+)"),
]
VIDEO_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{11}$")

DEFAULT_VIDEO_TITLE = "YouTube Video"


def extract_video_id(url_or_id: str) -> Optional[str]:
    """
    Extract the video id from a YouTube URL.

    Accepts watch, youtu.be, embed and /v/ URLs, or a bare 11-character id.
    Returns None when nothing matches.
    """
    value = url_or_id.strip()
    for pattern in YOUTUBE_URL_PATTERNS:
        match = pattern.search(value)
        if match:
            return match.group(1)
    if VIDEO_ID_PATTERN.match(value):
        return value
    return None


class ContentSource(Protocol):
    """Anything that can fetch an item's content by id."""

    async def fetch(self, item_id: str) -> SourceContent: ...


class StaticContentSource:
    """Serve content from a mapping of item id to SourceContent."""

    def __init__(self, contents: Mapping[str, SourceContent]) -> None:
        self._contents = dict(contents)

    async def fetch(self, item_id: str) -> SourceContent:
        try:
            return self._contents[item_id]
        except KeyError:
            raise SourceFetchError(f"No content for item {item_id}") from None


class YouTubeTranscriptSource:
    """
    Fetch public captions for YouTube videos.

    The transcript API is synchronous, so fetches run in a worker thread.
    Snippet texts are joined with single spaces.

    Attributes:
        titles: Optional display titles keyed by video id
        languages: Caption languages in order of preference
    """

    def __init__(
        self,
        titles: Optional[Mapping[str, str]] = None,
        languages: Sequence[str] = ("en",),
        api: Optional[YouTubeTranscriptApi] = None,
    ) -> None:
        self.titles = dict(titles or {})
        self.languages = list(languages)
        self._api = api or YouTubeTranscriptApi()

    def _fetch_text(self, video_id: str) -> str:
        transcript = self._api.fetch(video_id, languages=self.languages)
        return " ".join(snippet.text.strip() for snippet in transcript if snippet.text.strip())

    async def fetch(self, item_id: str) -> SourceContent:
        video_id = extract_video_id(item_id) or item_id
        try:
            text = await asyncio.to_thread(self._fetch_text, video_id)
        except Exception as e:
            logger.warning(f"Transcript fetch failed for {video_id}: {type(e).__name__}")
            raise SourceFetchError(
                f"Could not fetch transcript for {video_id}: {type(e).__name__}",
                details={"video_id": video_id},
            ) from e

        if not text:
            raise SourceFetchError(f"Transcript for {video_id} is empty", details={"video_id": video_id})

        title = self.titles.get(item_id) or self.titles.get(video_id) or DEFAULT_VIDEO_TITLE
        logger.debug(f"Fetched transcript for {video_id} ({len(text)} chars)")
        return SourceContent(title=title, raw_text=text)

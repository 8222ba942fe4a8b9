"""
Transcript retrieval via YouTube captions (youtube-transcript-api).

English captions are preferred; otherwise the first available track in
any language is used. Non-verbal markers such as [Music] are dropped.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from youtube_transcript_api import (
    CouldNotRetrieveTranscript,
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
    YouTubeTranscriptApi,
)

from ..utils.highlight import format_timestamp

logger = logging.getLogger(__name__)

PREFERRED_LANGUAGES = ['en', 'en-US', 'en-GB']
NON_VERBAL_MARKERS = ('[music]', '[applause]', '[laughter]', '[silence]')


@dataclass
class TranscriptSegment:
    start: float
    duration: float
    text: str

    @property
    def end(self) -> float:
        return self.start + self.duration

    @classmethod
    def from_snippet(cls, snippet) -> 'TranscriptSegment':
        return cls(start=float(snippet.start), duration=float(snippet.duration), text=snippet.text.strip())


def _clean(segments: Iterable[TranscriptSegment]) -> List[TranscriptSegment]:
    return [
        seg for seg in segments
        if seg.text and seg.text.lower() not in NON_VERBAL_MARKERS
    ]


def fetch_segments(youtube_id: str, languages: Optional[List[str]] = None) -> Optional[List[TranscriptSegment]]:
    """Caption segments for the video, or None if no usable captions exist."""
    api = YouTubeTranscriptApi()
    languages = languages or PREFERRED_LANGUAGES

    try:
        try:
            fetched = api.fetch(youtube_id, languages=languages)
        except NoTranscriptFound:
            logger.debug(f"No {languages} captions for {youtube_id}; trying any language")
            transcript = next(iter(api.list(youtube_id)), None)
            if transcript is None:
                return None
            fetched = transcript.fetch()
    except (TranscriptsDisabled, VideoUnavailable, NoTranscriptFound) as e:
        logger.info(f"Transcript not available for {youtube_id}: {type(e).__name__}")
        return None
    except CouldNotRetrieveTranscript as e:
        logger.warning(f"Error fetching transcript for {youtube_id}: {e}")
        return None

    segments = _clean(TranscriptSegment.from_snippet(snippet) for snippet in fetched)
    if not segments:
        logger.warning(f"No valid transcript segments found for {youtube_id}")
        return None

    logger.info(f"Fetched transcript for {youtube_id} ({len(segments)} segments)")
    return segments


def segments_to_text(segments: List[TranscriptSegment], with_timestamps: bool = False) -> str:
    """Join segments into plain text, or one "[m:ss] text" line per segment."""
    if with_timestamps:
        return "\n".join(f"[{format_timestamp(seg.start)}] {seg.text}" for seg in segments)
    return " ".join(seg.text for seg in segments)


def fetch_transcript(youtube_id: str, with_timestamps: bool = False) -> Optional[str]:
    segments = fetch_segments(youtube_id)
    if not segments:
        return None
    return segments_to_text(segments, with_timestamps=with_timestamps)

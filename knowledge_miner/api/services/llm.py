"""
OpenAI chat completions: transcript summaries and transcript-grounded answers.
"""

import os
import re
import logging
import threading
from typing import Dict, List, Optional

from openai import OpenAI, OpenAIError

from ..errors import ExternalServiceError, ServiceUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gpt-3.5-turbo"
TRANSCRIPT_MAX_CHARS = 14000

SUMMARY_SYSTEM_PROMPT = (
    "You are a helpful assistant that creates concise, informative summaries of YouTube "
    "video transcripts. Generate 5-7 bullet points that capture the key points discussed "
    "in the video."
)
ANSWER_SYSTEM_PROMPT = (
    "You are an AI assistant that helps users understand YouTube video content. "
    "You'll be given a transcript of a video and need to answer questions about it accurately. "
    "Focus on information explicitly stated in the transcript. "
    "If the answer is not in the transcript, say you don't have enough information rather than guessing. "
    "Give concise but comprehensive answers with specific timestamps or references when possible."
)
ANSWER_ACKNOWLEDGEMENT = "I've reviewed the transcript and I'm ready to answer questions about this video."
ANSWER_FALLBACK = "Sorry, I could not generate an answer."

_BULLET = re.compile(r'^(?:[•\-*]|\d+[.)])\s*')

_client: Optional[OpenAI] = None
_client_lock = threading.Lock()


def is_openai_configured() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


def get_chat_model() -> str:
    return os.getenv("OPENAI_MODEL") or DEFAULT_CHAT_MODEL


def get_openai_client() -> OpenAI:
    """Lazily create the shared client. Raises 503 when no key is configured."""
    global _client
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ServiceUnavailableError("OpenAI API key not configured")

    with _client_lock:
        if _client is None:
            _client = OpenAI(api_key=api_key)
    return _client


def reset_openai_client() -> None:
    global _client
    with _client_lock:
        _client = None


def truncate_transcript(transcript: str, max_chars: int = TRANSCRIPT_MAX_CHARS) -> str:
    if len(transcript) > max_chars:
        return transcript[:max_chars] + "... (transcript truncated)"
    return transcript


def parse_summary_points(summary_text: str) -> List[str]:
    """
    Pull bullet points ("•", "-", "*" or "1.") out of a model reply.
    Falls back to the whole reply as a single point.
    """
    text = (summary_text or "").strip()
    points = []
    for line in text.splitlines():
        line = line.strip()
        if _BULLET.match(line):
            point = _BULLET.sub('', line, count=1).strip()
            if point:
                points.append(point)

    if not points and text:
        return [text]
    return points


def _complete(messages: List[Dict[str, str]], temperature: float, max_tokens: int) -> str:
    client = get_openai_client()
    model = get_chat_model()
    try:
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except OpenAIError as e:
        logger.error(f"OpenAI request failed ({model}): {e}")
        raise ExternalServiceError("OpenAI", str(e))

    usage = getattr(response, "usage", None)
    if usage is not None:
        logger.info(f"Token usage ({model}) - Input: {usage.prompt_tokens}, Output: {usage.completion_tokens}")

    return (response.choices[0].message.content or "").strip()


def generate_summary(transcript: str, video_title: str) -> List[str]:
    """5-7 bullet-point summary of a transcript."""
    logger.info(f"Generating summary for video: {video_title[:80]}")
    messages = [
        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f'Please provide a summary of this YouTube video titled "{video_title}" in the form '
                f"of 5-7 bullet points. Here's the transcript:\n\n{truncate_transcript(transcript)}"
            ),
        },
    ]
    return parse_summary_points(_complete(messages, temperature=0.5, max_tokens=500))


def build_answer_messages(
    transcript: str,
    video_title: str,
    question: str,
    history: Optional[List[Dict[str, str]]] = None,
) -> List[Dict[str, str]]:
    """
    System prompt, transcript context, assistant acknowledgement, prior
    turns (role/content only), then the new question.
    """
    messages = [
        {"role": "system", "content": ANSWER_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                f'Here is the transcript of a YouTube video titled "{video_title}":\n\n'
                f"{truncate_transcript(transcript)}\n\n"
                "Please reference this transcript when answering questions."
            ),
        },
        {"role": "assistant", "content": ANSWER_ACKNOWLEDGEMENT},
    ]
    for message in history or []:
        if message.get("role") in ("user", "assistant") and message.get("content"):
            messages.append({"role": message["role"], "content": message["content"]})
    messages.append({"role": "user", "content": question})
    return messages


def generate_answer(
    transcript: str,
    video_title: str,
    question: str,
    history: Optional[List[Dict[str, str]]] = None,
) -> str:
    logger.info(f"Generating answer for question about video: {video_title[:80]}")
    messages = build_answer_messages(transcript, video_title, question, history)
    return _complete(messages, temperature=0.7, max_tokens=800) or ANSWER_FALLBACK

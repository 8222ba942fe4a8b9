"""
Tests for export rendering (transcripts, summaries, Q&A, batches, filenames).
"""

import json
from datetime import datetime, timezone

import pytest

from knowledge_miner.api.services import export_formats
from knowledge_miner.api.services.export_formats import (
    export_batch,
    export_single,
    filename_timestamp,
    format_batch,
    format_qa,
    format_summary,
    format_transcript,
    generate_filename,
    sanitize_title,
    transcript_lines,
)

MOMENT = datetime(2024, 1, 5, 10, 20, 30, 123000, tzinfo=timezone.utc)


class TestTranscriptFormatting:

    def test_lines_strip_html_and_blank_lines(self):
        text = "<b>Hello</b> world\n\n  second line  \n<i></i>\n"
        assert transcript_lines(text) == ["Hello world", "second line"]

    def test_txt_is_cleaned_lines(self):
        assert format_transcript("<p>Hi</p>\n\n  there  \n", "txt") == "Hi\nthere"

    def test_csv_quotes_text_and_doubles_quotes(self):
        content = format_transcript('He said "hi"\nBye', "csv")
        assert content.splitlines() == [
            'Line,Content',
            '1,"He said ""hi"""',
            '2,"Bye"',
        ]

    def test_json_has_lines_and_metadata(self):
        data = json.loads(format_transcript("a\nb", "json", MOMENT))
        assert data["transcript"] == ["a", "b"]
        assert data["metadata"] == {"totalLines": 2, "exportedAt": "2024-01-05T10:20:30.123Z"}


class TestSummaryFormatting:

    def test_txt_numbers_points(self):
        assert format_summary(["First", "Second"], "txt") == "1. First\n\n2. Second"

    def test_csv(self):
        assert format_summary(["Only"], "csv").splitlines() == ['Point,Content', '1,"Only"']

    def test_json(self):
        data = json.loads(format_summary(["x", "y", "z"], "json", MOMENT))
        assert data["summary"] == ["x", "y", "z"]
        assert data["metadata"]["totalPoints"] == 3


class TestQaFormatting:

    MESSAGES = [
        {"role": "user", "content": "What is it about?"},
        {"role": "assistant", "content": "Cooking, mostly.", "citations": []},
    ]

    def test_txt(self):
        content = format_qa("Dinner", self.MESSAGES, "txt")
        assert content == "# Dinner\n\nUser: What is it about?\n\nAssistant: Cooking, mostly.\n\n"

    def test_csv(self):
        lines = format_qa("Dinner", self.MESSAGES, "csv").splitlines()
        assert lines[0] == "Role,Message"
        assert lines[1] == "user,What is it about?"
        assert lines[2] == "assistant,\"Cooking, mostly.\""

    def test_json(self):
        data = json.loads(format_qa("Dinner", self.MESSAGES, "json", MOMENT))
        assert data["title"] == "Dinner"
        assert data["metadata"]["messageCount"] == 2


class TestBatchFormatting:

    VIDEOS = [
        {"id": 1, "title": "First", "youtube_id": "aaaaaaaaaaa", "transcript": "line one\nline two", "summary": ["p1"]},
        {"id": 2, "title": "Second", "youtube_id": "bbbbbbbbbbb", "transcript": None, "summary": None},
    ]

    def test_txt_sections_and_placeholder(self):
        content = format_batch(self.VIDEOS, "transcript", "txt")
        first, second = content.split("\n\n---\n\n")
        assert first == "# First\n\nline one\nline two"
        assert second == "# Second\n\nNo content available for this video.\n"

    def test_csv_quotes_rows_and_skips_empty(self):
        lines = format_batch(self.VIDEOS, "transcript", "csv").splitlines()
        assert lines[0] == 'Video Title,Video ID,Content'
        assert lines[1:] == ['"First","1","line one"', '"First","1","line two"']

    def test_csv_summary_header(self):
        header = format_batch(self.VIDEOS, "summary", "csv").splitlines()[0]
        assert header == 'Video Title,Video ID,Summary Point'

    def test_json(self):
        data = json.loads(format_batch(self.VIDEOS, "summary", "json", MOMENT))
        assert data["videos"][0] == {"id": 1, "title": "First", "youtube_id": "aaaaaaaaaaa", "summary": ["p1"]}
        assert data["videos"][1]["summary"] is None
        assert data["metadata"]["exportType"] == "summary"
        assert data["metadata"]["totalVideos"] == 2

    def test_qa_batch_rejected(self):
        with pytest.raises(ValueError):
            format_batch(self.VIDEOS, "qa", "txt")


class TestFilenames:

    def test_sanitize_replaces_and_collapses(self):
        assert sanitize_title("My Video: Part #1!") == "My_Video_Part_1_"

    def test_sanitize_truncates(self):
        assert len(sanitize_title("x" * 80)) == 50

    def test_timestamp(self):
        assert filename_timestamp(MOMENT) == "2024-01-05-10-20-30"

    def test_single_filename(self):
        assert generate_filename("summary", "csv", "Great Talk", moment=MOMENT) == \
            "Great_Talk_summary_2024-01-05-10-20-30.csv"

    def test_batch_filename(self):
        assert generate_filename("transcript", "json", "ignored", is_batch=True, moment=MOMENT) == \
            "transcript_batch_2024-01-05-10-20-30.json"


class TestEntryPoints:

    def test_export_single_transcript(self):
        video = {"id": 3, "title": "Talk", "transcript": "hello"}
        result = export_single(video, "transcript", "txt", moment=MOMENT)
        assert result.to_dict() == {
            "content": "hello",
            "filename": "Talk_transcript_2024-01-05-10-20-30.txt",
            "mimeType": "text/plain",
        }

    def test_export_single_missing_summary(self):
        with pytest.raises(ValueError, match="No summary"):
            export_single({"title": "T", "summary": None}, "summary", "txt")

    def test_export_single_qa_requires_conversation(self):
        with pytest.raises(ValueError):
            export_single({"title": "T"}, "qa", "json")

    def test_export_single_qa_filename_combines_titles(self):
        conversation = {"title": "Questions", "messages": []}
        result = export_single({"title": "Talk"}, "qa", "json", conversation, moment=MOMENT)
        assert result.filename == "Talk_Questions_qa_2024-01-05-10-20-30.json"
        assert result.mime_type == "application/json"

    def test_export_batch_requires_videos(self):
        with pytest.raises(ValueError):
            export_batch([], "transcript", "txt")

    def test_export_batch_mime(self):
        result = export_batch([{"id": 1, "title": "A", "transcript": "x"}], "transcript", "csv", moment=MOMENT)
        assert result.mime_type == export_formats.MIME_TYPES["csv"]
        assert result.filename == "transcript_batch_2024-01-05-10-20-30.csv"

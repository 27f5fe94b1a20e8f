"""Text extraction for uploaded files, web pages and YouTube videos."""

import re
import logging
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlparse

import fitz  # PyMuPDF
import requests
from bs4 import BeautifulSoup
from pydantic import BaseModel
from youtube_transcript_api import YouTubeTranscriptApi

from .exceptions import ExtractionError, UnsupportedFileTypeError

logger = logging.getLogger(__name__)

FILE_EXTENSIONS = {
    ".pdf": "pdf",
    ".md": "md",
    ".markdown": "md",
    ".txt": "txt",
}

YOUTUBE_ID_PATTERN = re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([^&?#]+)")

HTTP_TIMEOUT = 30


class ExtractionMetadata(BaseModel):
    page_count: Optional[int] = None
    author: Optional[str] = None
    title: Optional[str] = None
    word_count: int = 0


class ExtractionResult(BaseModel):
    """Plain text pulled from a source plus what we learned about it."""
    text: str
    metadata: ExtractionMetadata


def detect_file_type(filename: str) -> str:
    """Map a file name to pdf, md or txt; anything else is 'unknown'."""
    return FILE_EXTENSIONS.get(Path(filename).suffix.lower(), "unknown")


def detect_url_type(url: str) -> str:
    """YouTube links are transcribed, every other URL is scraped."""
    host = urlparse(url).netloc.lower()
    if "youtube.com" in host or "youtu.be" in host:
        return "youtube"
    return "url"


def count_words(text: str) -> int:
    return len(text.split())


def extract_content(source: Union[bytes, str], file_type: str) -> ExtractionResult:
    """
    Extract text content from a source.

    Args:
        source: Raw file bytes for pdf/md/txt, the address for url/youtube
        file_type: One of pdf, md, txt, url, youtube

    Returns:
        Extracted text and metadata
    """
    if file_type == "pdf":
        return extract_from_pdf(source)
    if file_type in ("md", "txt"):
        return extract_from_text(source)
    if file_type == "url":
        return extract_from_url(source)
    if file_type == "youtube":
        return extract_from_youtube(source)
    raise UnsupportedFileTypeError(f"Unsupported file type: {file_type}")


def extract_from_pdf(data: bytes) -> ExtractionResult:
    """Extract page text and document metadata from PDF bytes."""
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as e:
        raise ExtractionError(f"Could not open PDF: {e}") from e

    try:
        pages = [page.get_text() for page in doc]
        metadata = doc.metadata or {}
        text = "\n\n".join(pages)

        return ExtractionResult(
            text=text,
            metadata=ExtractionMetadata(
                page_count=doc.page_count,
                author=metadata.get("author") or None,
                title=metadata.get("title") or None,
                word_count=count_words(text)
            )
        )
    finally:
        doc.close()


def extract_from_text(data: Union[bytes, str]) -> ExtractionResult:
    text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
    return ExtractionResult(
        text=text,
        metadata=ExtractionMetadata(word_count=count_words(text))
    )


def extract_from_url(url: str) -> ExtractionResult:
    """Fetch a web page and keep the visible body text."""
    try:
        response = requests.get(url, timeout=HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ExtractionError(f"Failed to fetch {url}: {e}") from e

    soup = BeautifulSoup(response.text, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    body = soup.body or soup
    text = re.sub(r"\s+", " ", body.get_text(" ")).strip()
    title = soup.title.get_text(strip=True) if soup.title else ""

    return ExtractionResult(
        text=text,
        metadata=ExtractionMetadata(
            title=title or None,
            word_count=count_words(text)
        )
    )


def extract_youtube_video_id(url: str) -> str:
    match = YOUTUBE_ID_PATTERN.search(url)
    if not match:
        raise ExtractionError(f"Invalid YouTube URL: {url}")
    return match.group(1)


def extract_from_youtube(video_url: str) -> ExtractionResult:
    """Join the transcript snippets of a YouTube video."""
    video_id = extract_youtube_video_id(video_url)

    try:
        transcript = YouTubeTranscriptApi().fetch(video_id)
    except Exception as e:
        raise ExtractionError(f"Transcript unavailable for {video_id}: {e}") from e

    text = " ".join(snippet.text for snippet in transcript)
    logger.info(f"Fetched transcript for {video_id}: {len(text)} characters")

    return ExtractionResult(
        text=text,
        metadata=ExtractionMetadata(
            title=f"YouTube Video: {video_id}",
            word_count=count_words(text)
        )
    )


def load_file_bytes(file_url: str) -> bytes:
    """Read a stored upload from the local object store or over HTTP."""
    if file_url.startswith(("http://", "https://")):
        try:
            response = requests.get(file_url, timeout=HTTP_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ExtractionError(f"Failed to download {file_url}: {e}") from e
        return response.content

    path = Path(file_url.removeprefix("file://"))
    if not path.exists():
        raise ExtractionError(f"Stored file not found: {path}")
    return path.read_bytes()

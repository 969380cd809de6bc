"""
Google Drive sharing links as course materials.

Metadata comes from the public preview page, so only files shared with
"anyone with the link" can be added. No OAuth is involved.
"""

import html
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

import httpx

from ..api.exceptions import BadRequestException

logger = logging.getLogger(__name__)

DRIVE_HOSTS = ("drive.google.com", "docs.google.com")
DRIVE_PATH_MARKERS = ("/file/d/", "/document/d/", "/spreadsheets/d/", "/presentation/d/")
FILE_ID_PATTERN = re.compile(r"/(?:file|document|spreadsheets|presentation)/d/([a-zA-Z0-9_-]+)")
TITLE_PATTERN = re.compile(r"<title>([^<]+)</title>", re.IGNORECASE)
OG_TITLE_PATTERN = re.compile(r'<meta property="og:title" content="([^"]+)"', re.IGNORECASE)
GOOGLE_SUFFIX_PATTERN = re.compile(r" - Google (?:Drive|Docs|Sheets|Slides)$", re.IGNORECASE)
LINKED_FILE_EXTENSIONS = ("pdf", "docx", "doc", "pptx", "ppt")

PREVIEW_URL = "https://drive.google.com/file/d/{file_id}/view"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"


@dataclass
class DriveFileMetadata:
    file_id: str
    file_name: Optional[str]
    file_type: str


def is_google_drive_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https"):
        return False
    hostname = (parsed.hostname or "").lower()
    if not any(hostname == host or hostname.endswith(f".{host}") for host in DRIVE_HOSTS):
        return False

    if any(marker in parsed.path for marker in DRIVE_PATH_MARKERS):
        return True
    return parsed.path.startswith("/open") and "id" in parse_qs(parsed.query)


def extract_file_id(url: str) -> Optional[str]:
    parsed = urlparse(url)
    match = FILE_ID_PATTERN.search(parsed.path)
    if match:
        return match.group(1)
    ids = parse_qs(parsed.query).get("id")
    return ids[0] if ids else None


def sanitize_display_filename(filename: str) -> str:
    return GOOGLE_SUFFIX_PATTERN.sub("", filename.strip()).strip()[:255]


def detect_file_type(url: str, file_name: Optional[str]) -> str:
    path = urlparse(url).path
    if "/document/d/" in path:
        return "docx"
    if "/presentation/d/" in path:
        return "pptx"
    if file_name:
        lowered = file_name.lower()
        for extension in LINKED_FILE_EXTENSIONS:
            if lowered.endswith(f".{extension}"):
                return extension
    return "link"


def parse_file_name(page: str) -> Optional[str]:
    for pattern in (TITLE_PATTERN, OG_TITLE_PATTERN):
        match = pattern.search(page)
        if match:
            name = sanitize_display_filename(html.unescape(match.group(1)))
            if name:
                return name
    return None


class GoogleDriveService:
    """Reads file names of publicly shared Drive files"""

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def fetch_metadata(self, url: str) -> DriveFileMetadata:
        file_id = extract_file_id(url)
        if not file_id:
            raise BadRequestException("Invalid Google Drive URL format")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(
                    PREVIEW_URL.format(file_id=file_id),
                    headers={"User-Agent": USER_AGENT}
                )
        except httpx.TimeoutException:
            logger.warning(f"Timed out fetching Drive metadata for {file_id}")
            raise BadRequestException("Request timeout - file may be too large or inaccessible")
        except httpx.HTTPError as e:
            logger.error(f"Drive metadata request failed for {file_id}: {e}")
            raise BadRequestException("Failed to fetch file information from Google Drive")

        if response.status_code in (403, 404):
            raise BadRequestException("This file is not publicly accessible. Please check sharing settings.")
        if response.status_code >= 400:
            raise BadRequestException(f"Failed to fetch file metadata: {response.status_code}")

        file_name = parse_file_name(response.text)
        return DriveFileMetadata(
            file_id=file_id,
            file_name=file_name,
            file_type=detect_file_type(url, file_name),
        )


_drive_service: Optional[GoogleDriveService] = None


def get_google_drive_service() -> GoogleDriveService:
    """FastAPI dependency returning the shared Drive metadata reader"""
    global _drive_service
    if _drive_service is None:
        _drive_service = GoogleDriveService()
    return _drive_service

import asyncio
import pytest
from unittest.mock import patch

import httpx

from coursehub_backend.api.exceptions import BadRequestException
from coursehub_backend.services.google_drive import (
    GoogleDriveService,
    detect_file_type,
    extract_file_id,
    is_google_drive_url,
    parse_file_name,
    sanitize_display_filename,
)

REAL_ASYNC_CLIENT = httpx.AsyncClient


def drive_responding_with(handler):
    """Route the service's HTTP client through an in-process handler."""

    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)

    return patch.object(httpx, "AsyncClient", side_effect=factory)


class TestDriveUrls:

    @pytest.mark.parametrize("url", [
        "https://drive.google.com/file/d/abc123/view?usp=sharing",
        "https://docs.google.com/document/d/abc123/edit",
        "https://docs.google.com/presentation/d/abc123/edit",
        "https://drive.google.com/open?id=abc123",
    ])
    def test_recognised(self, url):
        assert is_google_drive_url(url)
        assert extract_file_id(url) == "abc123"

    @pytest.mark.parametrize("url", [
        "https://example.com/file/d/abc123/view",
        "https://drive.google.com.evil.test/file/d/abc123/view",
        "ftp://drive.google.com/file/d/abc123/view",
        "https://drive.google.com/drive/folders/abc123",
        "not a url",
    ])
    def test_rejected(self, url):
        assert not is_google_drive_url(url)

    def test_file_type(self):
        assert detect_file_type("https://docs.google.com/document/d/x/edit", None) == "docx"
        assert detect_file_type("https://docs.google.com/presentation/d/x/edit", None) == "pptx"
        assert detect_file_type("https://drive.google.com/file/d/x/view", "Notes.PDF") == "pdf"
        assert detect_file_type("https://drive.google.com/file/d/x/view", "archive.zip") == "link"

    def test_title_suffix_is_dropped(self):
        assert sanitize_display_filename("  Syllabus.pdf - Google Drive ") == "Syllabus.pdf"
        assert parse_file_name("<html><title>Q&amp;A.docx - Google Docs</title></html>") == "Q&A.docx"
        assert parse_file_name('<meta property="og:title" content="Slides.pptx">') == "Slides.pptx"
        assert parse_file_name("<html></html>") is None


class TestFetchMetadata:

    def test_reads_title(self):
        def handler(request):
            assert request.url.path == "/file/d/abc123/view"
            return httpx.Response(200, text="<title>Week 1.pdf - Google Drive</title>")

        with drive_responding_with(handler):
            metadata = asyncio.run(GoogleDriveService().fetch_metadata("https://drive.google.com/open?id=abc123"))

        assert metadata.file_id == "abc123"
        assert metadata.file_name == "Week 1.pdf"
        assert metadata.file_type == "pdf"

    @pytest.mark.parametrize("status_code, message", [
        (404, "This file is not publicly accessible. Please check sharing settings."),
        (403, "This file is not publicly accessible. Please check sharing settings."),
        (500, "Failed to fetch file metadata: 500"),
    ])
    def test_error_status(self, status_code, message):
        with drive_responding_with(lambda request: httpx.Response(status_code)):
            with pytest.raises(BadRequestException) as error:
                asyncio.run(GoogleDriveService().fetch_metadata("https://drive.google.com/file/d/abc123/view"))

        assert error.value.detail == message

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with drive_responding_with(handler):
            with pytest.raises(BadRequestException) as error:
                asyncio.run(GoogleDriveService().fetch_metadata("https://drive.google.com/file/d/abc123/view"))

        assert error.value.detail == "Request timeout - file may be too large or inaccessible"

    def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with drive_responding_with(handler):
            with pytest.raises(BadRequestException) as error:
                asyncio.run(GoogleDriveService().fetch_metadata("https://drive.google.com/file/d/abc123/view"))

        assert error.value.detail == "Failed to fetch file information from Google Drive"

import pytest
import io

from coursehub_backend.storage_security import (
    sanitize_filename,
    validate_file_extension,
    validate_content_type,
    validate_file_size,
    validate_file_signature,
    validate_storage_path,
    validate_material_upload,
    validate_image_upload
)
from coursehub_backend.storage_config import (
    IMAGE_MAX_UPLOAD_SIZE,
    IMAGE_SIGNATURES,
    IMAGE_TYPES,
    MATERIAL_MAX_UPLOAD_SIZE,
    MATERIAL_SIGNATURES,
    MATERIAL_TYPES,
    format_bytes
)
from coursehub_backend.api.exceptions import BadRequestException
from coursehub_backend.tests.fixtures import EXE_BYTES, PDF_BYTES, PNG_BYTES


class TestFilenameSanitization:
    """Test filename sanitization"""

    def test_normal_filename(self):
        assert sanitize_filename("document.pdf") == "document.pdf"
        assert sanitize_filename("my_file-123.docx") == "my_file-123.docx"

    def test_path_traversal_prevention(self):
        assert sanitize_filename("../../../etc/passwd") == "passwd"
        assert sanitize_filename("/etc/passwd") == "passwd"
        assert sanitize_filename("..\\..\\windows\\system32\\config") == "config"

    def test_special_characters_replaced(self):
        assert sanitize_filename("my file name.doc") == "my_file_name.doc"
        assert sanitize_filename("file   with   spaces.txt") == "file_with_spaces.txt"
        assert sanitize_filename("week<1>:notes?.pdf") == "week_1_notes_.pdf"

    def test_hidden_file_prevention(self):
        assert sanitize_filename(".hidden.pdf") == "hidden.pdf"
        assert sanitize_filename("..double_dot.pdf") == "double_dot.pdf"

    def test_long_filename_truncation(self):
        result = sanitize_filename("a" * 150 + ".pdf")

        assert result == "a" * 100 + ".pdf"

    def test_non_ascii_is_replaced(self):
        assert sanitize_filename("résumé.pdf") == "r_sum_.pdf"

    def test_empty_filename(self):
        assert sanitize_filename("") == "unnamed_file"
        assert sanitize_filename("   ") == "unnamed_file"
        assert sanitize_filename("???") == "unnamed_file"


class TestFileValidation:
    """Test file validation functions"""

    def test_validate_file_extension(self):
        assert validate_file_extension("notes.pdf", MATERIAL_TYPES) == (True, None)
        assert validate_file_extension("NOTES.PPTX", MATERIAL_TYPES) == (True, None)

        valid, error = validate_file_extension("virus.exe", MATERIAL_TYPES)
        assert not valid
        assert "not allowed" in error

        valid, error = validate_file_extension("no_extension", MATERIAL_TYPES)
        assert not valid
        assert error == "File must have an extension"

    def test_validate_content_type(self):
        assert validate_content_type("application/pdf", "notes.pdf", MATERIAL_TYPES) == (True, None)
        assert validate_content_type("application/octet-stream", "notes.pdf", MATERIAL_TYPES) == (True, None)
        assert validate_content_type(None, "notes.pdf", MATERIAL_TYPES) == (True, None)

        valid, _ = validate_content_type("image/png", "notes.pdf", MATERIAL_TYPES)
        assert not valid

        valid, _ = validate_content_type("image/png", "photo.jpg", IMAGE_TYPES)
        assert not valid

    def test_validate_file_size(self):
        assert validate_file_size(1024, MATERIAL_MAX_UPLOAD_SIZE) == (True, None)
        assert validate_file_size(MATERIAL_MAX_UPLOAD_SIZE, MATERIAL_MAX_UPLOAD_SIZE) == (True, None)

        valid, error = validate_file_size(MATERIAL_MAX_UPLOAD_SIZE + 1, MATERIAL_MAX_UPLOAD_SIZE)
        assert not valid
        assert "exceeds maximum" in error

        valid, error = validate_file_size(0, MATERIAL_MAX_UPLOAD_SIZE)
        assert not valid
        assert error == "Empty files are not allowed"

    def test_validate_storage_path(self):
        assert validate_storage_path("course-materials/abc/123-notes.pdf") == (True, None)

        assert not validate_storage_path("../etc/passwd")[0]
        assert not validate_storage_path("/absolute/path")[0]
        assert not validate_storage_path("path\\with\\backslash")[0]
        assert not validate_storage_path("path with spaces/file.pdf")[0]


class TestFileSignatures:
    """Magic bytes must agree with the extension"""

    def test_matching_signatures(self):
        assert validate_file_signature(PDF_BYTES[:16], "notes.pdf", MATERIAL_SIGNATURES) == (True, None)
        assert validate_file_signature(b"PK\x03\x04" + b"\x00" * 12, "slides.pptx", MATERIAL_SIGNATURES) == (True, None)
        assert validate_file_signature(PNG_BYTES[:16], "me.png", IMAGE_SIGNATURES) == (True, None)
        assert validate_file_signature(b"GIF89a" + b"\x00" * 10, "me.gif", IMAGE_SIGNATURES) == (True, None)

    def test_mismatched_signature(self):
        valid, error = validate_file_signature(PNG_BYTES[:16], "notes.pdf", MATERIAL_SIGNATURES)

        assert not valid
        assert error == "File content does not match a valid PDF file"

    def test_executable_is_rejected(self):
        valid, error = validate_file_signature(EXE_BYTES[:16], "notes.pdf", MATERIAL_SIGNATURES)

        assert not valid
        assert error == "File type not allowed: Windows executable"

    def test_webp_needs_webp_marker(self):
        webp = b"RIFF\x24\x00\x00\x00WEBPVP8 "
        wav = b"RIFF\x24\x00\x00\x00WAVEfmt "

        assert validate_file_signature(webp, "image.webp", IMAGE_SIGNATURES) == (True, None)
        assert not validate_file_signature(wav, "image.webp", IMAGE_SIGNATURES)[0]


class TestUploadValidation:
    """Full validation of an upload"""

    def test_valid_material(self):
        mime_type = validate_material_upload("notes.pdf", "application/pdf", len(PDF_BYTES), io.BytesIO(PDF_BYTES))

        assert mime_type == "application/pdf"

    def test_generic_content_type_resolves_to_canonical(self):
        mime_type = validate_image_upload("me.png", "application/octet-stream", len(PNG_BYTES), io.BytesIO(PNG_BYTES))

        assert mime_type == "image/png"

    def test_stream_position_is_restored(self):
        data = io.BytesIO(PDF_BYTES)

        validate_material_upload("notes.pdf", "application/pdf", len(PDF_BYTES), data)

        assert data.tell() == 0

    def test_oversized_image(self):
        with pytest.raises(BadRequestException) as exc_info:
            validate_image_upload("me.png", "image/png", IMAGE_MAX_UPLOAD_SIZE + 1, io.BytesIO(PNG_BYTES))

        assert exc_info.value.status_code == 400
        assert "exceeds maximum" in exc_info.value.detail

    def test_pdf_is_not_an_image(self):
        with pytest.raises(BadRequestException):
            validate_image_upload("notes.pdf", "application/pdf", len(PDF_BYTES), io.BytesIO(PDF_BYTES))

    def test_format_bytes(self):
        assert format_bytes(512) == "512.00 B"
        assert format_bytes(10 * 1024 * 1024) == "10.00 MB"

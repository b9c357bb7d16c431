from portal_backend.storage_security import (
    ALLOWED_EXTENSIONS,
    check_file_content_security,
    classify_file_type,
    sanitize_filename,
    validate_file_extension,
)


class TestFilenameSanitization:
    """Test filename sanitization"""

    def test_normal_filename(self):
        assert sanitize_filename("document.pdf") == "document.pdf"
        assert sanitize_filename("my_file_123.txt") == "my_file_123.txt"

    def test_path_traversal_prevention(self):
        assert sanitize_filename("../../../etc/passwd") == "passwd"
        assert sanitize_filename("/etc/passwd") == "passwd"
        assert sanitize_filename("..\\..\\windows\\system32\\config") == "config"

    def test_special_characters_removal(self):
        assert sanitize_filename("file<>:|?*.txt") == "file.txt"
        assert sanitize_filename("my@file#2024!.pdf") == "myfile2024.pdf"

    def test_space_handling(self):
        assert sanitize_filename("my file name.doc") == "my_file_name.doc"
        assert sanitize_filename("file   with   spaces.txt") == "file_with_spaces.txt"

    def test_hidden_file_prevention(self):
        assert sanitize_filename(".hidden_file.txt") == "_hidden_file.txt"
        assert sanitize_filename("..double_dot.pdf") == "_double_dot.pdf"

    def test_long_filename_truncation(self):
        result = sanitize_filename("a" * 150 + ".txt")
        assert len(result) == 104
        assert result.endswith(".txt")

    def test_unicode_support(self):
        assert sanitize_filename("文档.pdf") == "文档.pdf"
        assert sanitize_filename("файл.txt") == "файл.txt"

    def test_empty_filename(self):
        assert sanitize_filename("") == "unnamed_file"
        assert sanitize_filename("   ") == "unnamed_file"
        assert sanitize_filename("folder/") == "unnamed_file"


class TestFileValidation:
    """Test extension allow list"""

    def test_valid_extensions(self):
        for name in ["photo.jpg", "photo.JPEG", "clip.mp4", "report.pdf", "sheet.xlsx", "backup.zip"]:
            valid, error = validate_file_extension(name)
            assert valid is True, name
            assert error is None

    def test_invalid_extensions(self):
        for name in ["virus.exe", "script.sh", "page.html", "lib.dll"]:
            valid, error = validate_file_extension(name)
            assert valid is False, name
            assert "not allowed" in error

    def test_svg_is_rejected(self):
        valid, error = validate_file_extension("logo.svg")
        assert valid is False
        assert "not allowed" in error

    def test_no_extension(self):
        valid, error = validate_file_extension("README")
        assert valid is False
        assert error == "File must have an extension"

    def test_allow_list_is_lower_case(self):
        assert all(ext == ext.lower() and ext.startswith(".") for ext in ALLOWED_EXTENSIONS)


class TestContentSecurity:
    """Test file content security checks"""

    def test_safe_text_file(self):
        valid, error = check_file_content_security(b"This is a safe text file", "document.txt")
        assert valid is True
        assert error is None

    def test_windows_executable_detection(self):
        valid, error = check_file_content_security(b"MZ\x90\x00\x03\x00\x00\x00", "program.txt")
        assert valid is False
        assert "Windows executable" in error

    def test_linux_executable_detection(self):
        valid, error = check_file_content_security(b"\x7fELF\x02\x01\x01\x00", "program.pdf")
        assert valid is False
        assert "Linux executable" in error

    def test_java_class_detection(self):
        valid, error = check_file_content_security(b"\xca\xfe\xba\xbe\x00\x00", "Main.zip")
        assert valid is False
        assert "Java class file" in error

    def test_legitimate_zip_allowed(self):
        valid, error = check_file_content_security(b"PK\x03\x04\x14\x00\x00\x00", "archive.zip")
        assert valid is True
        assert error is None


class TestClassification:

    def test_by_mime_type(self):
        assert classify_file_type("image/png", ".png") == "image"
        assert classify_file_type("video/mp4", ".mp4") == "video"
        assert classify_file_type("audio/mpeg", ".mp3") == "audio"
        assert classify_file_type("application/pdf", ".pdf") == "document"
        assert classify_file_type("text/plain; charset=utf-8", ".txt") == "document"

    def test_archives(self):
        assert classify_file_type("application/zip", ".zip") == "archive"
        assert classify_file_type("application/octet-stream", ".7z") == "archive"

    def test_unknown(self):
        assert classify_file_type("application/octet-stream", ".bin") == "other"
        assert classify_file_type("", ".dat") == "other"

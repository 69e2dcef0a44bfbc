"""
Tests for the raw upload archive
"""
from datetime import date

import pytest

from tollvault.domain.services.upload_archive import archive_upload, safe_filename


class TestSafeFilename:

    @pytest.mark.unit
    @pytest.mark.parametrize("raw, expected", [
        ("toll.csv", "toll.csv"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\ops\\toll.csv", "toll.csv"),
        ("/abs/path/toll.csv", "toll.csv"),
        ("..", "upload.csv"),
        ("", "upload.csv"),
        (None, "upload.csv"),
    ])
    def test_basename_only(self, raw, expected):
        assert safe_filename(raw) == expected


class TestArchiveUpload:

    @pytest.mark.unit
    def test_stored_under_date_directory(self, tmp_path):
        path = archive_upload(b"a,b\n", "toll.csv", date(2024, 1, 10), base_dir=str(tmp_path))

        assert path == tmp_path / "2024-01-10" / "toll.csv"
        assert path.read_bytes() == b"a,b\n"

    @pytest.mark.unit
    def test_same_name_same_day_overwritten(self, tmp_path):
        archive_upload(b"first", "toll.csv", date(2024, 1, 10), base_dir=str(tmp_path))
        path = archive_upload(b"second", "toll.csv", date(2024, 1, 10), base_dir=str(tmp_path))
        assert path.read_bytes() == b"second"

    @pytest.mark.unit
    def test_traversal_stays_inside_archive(self, tmp_path):
        path = archive_upload(b"x", "../../escape.csv", date(2024, 1, 10), base_dir=str(tmp_path))
        assert path.parent == tmp_path / "2024-01-10"

    @pytest.mark.unit
    def test_default_base_dir_from_settings(self, upload_dir):
        path = archive_upload(b"x", "toll.csv", date(2024, 1, 10))
        assert path == upload_dir / "2024-01-10" / "toll.csv"

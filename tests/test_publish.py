import pytest
from boto3.exceptions import S3UploadFailedError

from merger import s3
from merger.errors import ResourceError
from merger.publish import DirectoryPublisher


def test_moves_output_and_returns_url(tmp_path, output_dir):
    src = tmp_path / "merged_x.mp4"
    src.write_bytes(b"video")

    ref = DirectoryPublisher(output_dir, "/media/merged/")(src, "merged_x.mp4")

    assert ref == "/media/merged/merged_x.mp4"
    assert (output_dir / "merged_x.mp4").read_bytes() == b"video"
    assert not src.exists()
    assert [p.name for p in output_dir.iterdir()] == ["merged_x.mp4"]


def test_existing_outputs_are_left_alone(tmp_path, output_dir):
    output_dir.mkdir()
    (output_dir / "merged_other.mp4").write_bytes(b"other")
    src = tmp_path / "merged_new.mp4"
    src.write_bytes(b"new")

    DirectoryPublisher(output_dir)(src, "merged_new.mp4")

    assert (output_dir / "merged_other.mp4").read_bytes() == b"other"


def test_missing_source_is_resource_error(tmp_path, output_dir):
    with pytest.raises(ResourceError):
        DirectoryPublisher(output_dir)(tmp_path / "gone.mp4", "gone.mp4")
    assert not (output_dir / ".gone.mp4.part").exists()


def test_failed_s3_upload_is_resource_error(tmp_path, monkeypatch):
    def failing_upload(local_path, key, content_type=None):
        raise S3UploadFailedError("Failed to upload merged_x.mp4: An error occurred (SlowDown)")

    monkeypatch.setattr(s3, "upload_file", failing_upload)
    src = tmp_path / "merged_x.mp4"
    src.write_bytes(b"video")

    with pytest.raises(ResourceError) as exc:
        s3.S3Publisher(prefix="merged")(src, "merged_x.mp4")

    assert exc.value.kind == "resource"
    assert "SlowDown" not in exc.value.message
    assert "merged/merged_x.mp4" in exc.value.detail
    assert src.exists()

import io
from unittest.mock import MagicMock

import pytest

from shared.errors import AccessError, NotFoundError, RangeError, ResourceError
from upload_tool.content_source import ContentSource


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"x" * 10000)
    return path


def test_open_measures_length_once(video_file):
    with ContentSource.open(video_file) as source:
        assert source.length() == 10000
        assert source.name == "clip.mp4"
        assert source.path == video_file.absolute()


def test_open_missing_file():
    with pytest.raises(NotFoundError):
        ContentSource.open("/nonexistent/clip.mp4")


def test_open_directory(tmp_path):
    with pytest.raises(AccessError):
        ContentSource.open(tmp_path)


def test_read_at_chunks_and_tail(video_file):
    with ContentSource.open(video_file) as source:
        assert len(source.read_at(0, 4096)) == 4096
        assert len(source.read_at(8192, 4096)) == 1808
        assert source.read_at(10000, 4096) == b""


def test_read_at_returns_exact_bytes():
    source = ContentSource.from_bytes(b"0123456789")
    assert source.read_at(3, 4) == b"3456"
    assert source.read_at(8, 100) == b"89"


@pytest.mark.parametrize("offset", [-1, 10001])
def test_read_outside_bounds(offset):
    source = ContentSource.from_bytes(b"x" * 10000)
    with pytest.raises(RangeError):
        source.read_at(offset, 10)


def test_read_with_non_positive_size():
    source = ContentSource.from_bytes(b"abc")
    with pytest.raises(RangeError):
        source.read_at(0, 0)


def test_read_after_close():
    source = ContentSource.from_bytes(b"abc")
    source.close()
    with pytest.raises(ResourceError):
        source.read_at(0, 1)


def test_close_releases_handle_once():
    stream = MagicMock()
    source = ContentSource(stream, 10)

    source.close()
    source.close()

    stream.close.assert_called_once()
    assert source.closed


def test_context_manager_closes_on_error():
    stream = MagicMock()
    with pytest.raises(RuntimeError):
        with ContentSource(stream, 10):
            raise RuntimeError("boom")
    stream.close.assert_called_once()


def test_file_shrinking_during_upload(video_file):
    with ContentSource.open(video_file) as source:
        video_file.write_bytes(b"x" * 100)
        with pytest.raises(ResourceError):
            source.read_at(4096, 4096)


def test_from_stream_uses_current_position():
    stream = io.BytesIO(b"headerPAYLOAD")
    stream.seek(6)

    source = ContentSource.from_stream(stream, name="payload")

    assert source.length() == 7
    assert source.read_at(0, 3) == b"PAY"
    assert source.read_at(3, 10) == b"LOAD"


def test_from_stream_requires_seekable():
    stream = MagicMock()
    stream.seekable.return_value = False
    with pytest.raises(AccessError):
        ContentSource.from_stream(stream)

from http import client
from urllib import request

import pytest

from conftest import FakeOpener
from talktype.errors import DownloadError, MissingContentLengthError
from talktype.models.events import ModelDownloadComplete, ModelDownloadProgress
from talktype.services.catalog import ModelDescriptor
from talktype.services.downloader import KeepHeadRedirectHandler, ModelDownloadManager, run_download


DESCRIPTOR = ModelDescriptor(
    id="tiny-test",
    name="Tiny Test",
    size_mb=1,
    description="test fixture",
    source_url="https://models.example.invalid/tiny/resolve/main/",
    local_filename="faster-whisper-tiny-test",
    files=("config.json", "model.bin"),
)

FILES = {"config.json": b'{"a": 1}', "model.bin": b"\x01" * 4096}


def _drain(manager):
    events = []
    for ev in manager.download(DESCRIPTOR):
        events.append(ev)
    return events


def test_existing_model_completes_without_network(tmp_path):
    (tmp_path / DESCRIPTOR.local_filename).mkdir()
    opener = FakeOpener(FILES)
    events = _drain(ModelDownloadManager(tmp_path, opener=opener))
    assert events == [ModelDownloadComplete(success=True)]
    assert opener.calls == []


def test_successful_download_reports_progress_and_installs(tmp_path):
    opener = FakeOpener(FILES)
    events = _drain(ModelDownloadManager(tmp_path, opener=opener))

    progress = [e for e in events if isinstance(e, ModelDownloadProgress)]
    total = sum(len(b) for b in FILES.values())
    assert progress
    assert all(p.total_bytes == total for p in progress)
    assert [p.downloaded_bytes for p in progress] == sorted(p.downloaded_bytes for p in progress)
    assert progress[-1].downloaded_bytes == total
    assert progress[-1].progress_percent == pytest.approx(100.0)
    assert events[-1] == ModelDownloadComplete(success=True)

    final = tmp_path / DESCRIPTOR.local_filename
    assert (final / "model.bin").read_bytes() == FILES["model.bin"]
    assert (final / "config.json").read_bytes() == FILES["config.json"]
    assert not (tmp_path / (DESCRIPTOR.local_filename + ".tmp")).exists()
    # sizes are probed before any body is fetched
    assert [m for m, _ in opener.calls] == ["HEAD", "HEAD", "GET", "GET"]
    assert opener.calls[0][1] == "https://models.example.invalid/tiny/resolve/main/config.json"


def test_interrupted_download_leaves_nothing_behind(tmp_path):
    opener = FakeOpener(FILES, fail_file="model.bin")
    events = []
    with pytest.raises(DownloadError):
        for ev in ModelDownloadManager(tmp_path, opener=opener).download(DESCRIPTOR):
            events.append(ev)

    assert events[-1].success is False
    assert "connection reset" in events[-1].error
    assert not (tmp_path / DESCRIPTOR.local_filename).exists()
    assert not (tmp_path / (DESCRIPTOR.local_filename + ".tmp")).exists()


def test_missing_content_length_fails_before_writing(tmp_path):
    opener = FakeOpener(FILES, omit_length=True)
    events = []
    with pytest.raises(MissingContentLengthError):
        for ev in ModelDownloadManager(tmp_path, opener=opener).download(DESCRIPTOR):
            events.append(ev)
    assert events == [ModelDownloadComplete(success=False, error=events[0].error)]
    assert "content length" in events[0].error
    assert list(tmp_path.iterdir()) == []


def test_stale_staging_dir_is_replaced(tmp_path):
    stale = tmp_path / (DESCRIPTOR.local_filename + ".tmp")
    stale.mkdir()
    (stale / "model.bin").write_bytes(b"partial")
    _drain(ModelDownloadManager(tmp_path, opener=FakeOpener(FILES)))
    assert not stale.exists()
    assert (tmp_path / DESCRIPTOR.local_filename / "model.bin").read_bytes() == FILES["model.bin"]


def test_run_download_publishes_every_event(tmp_path):
    published = []
    ok = run_download(ModelDownloadManager(tmp_path, opener=FakeOpener(FILES)), DESCRIPTOR, published.append)
    assert ok is True
    assert isinstance(published[-1], ModelDownloadComplete)

    published.clear()
    ok = run_download(
        ModelDownloadManager(tmp_path / "other", opener=FakeOpener(FILES, fail_file="config.json")),
        DESCRIPTOR,
        published.append,
    )
    assert ok is False
    assert published[-1].success is False


def test_truncated_transfer_is_cleaned_up_and_reported(tmp_path):
    opener = FakeOpener(FILES, fail_file="model.bin", fail_with=client.IncompleteRead(b"\x01" * 10, 4086))
    events = []
    with pytest.raises(DownloadError):
        for ev in ModelDownloadManager(tmp_path, opener=opener).download(DESCRIPTOR):
            events.append(ev)

    assert isinstance(events[-1], ModelDownloadComplete)
    assert events[-1].success is False
    assert "IncompleteRead" in events[-1].error
    assert list(tmp_path.iterdir()) == []


def test_truncated_transfer_in_background_still_completes(tmp_path):
    published = []
    opener = FakeOpener(FILES, fail_file="model.bin", fail_with=client.IncompleteRead(b"", 4096))
    assert run_download(ModelDownloadManager(tmp_path, opener=opener), DESCRIPTOR, published.append) is False
    assert published[-1].success is False


def test_unexpected_error_is_reported_as_download_error(tmp_path):
    opener = FakeOpener(FILES, fail_file="config.json", fail_with=ValueError("bad chunk"))
    events = []
    with pytest.raises(DownloadError):
        for ev in ModelDownloadManager(tmp_path, opener=opener).download(DESCRIPTOR):
            events.append(ev)
    assert events[-1] == ModelDownloadComplete(success=False, error=events[-1].error)
    assert "bad chunk" in events[-1].error
    assert list(tmp_path.iterdir()) == []


def test_short_body_is_never_installed(tmp_path):
    opener = FakeOpener(FILES, short_file="model.bin")
    events = []
    with pytest.raises(DownloadError, match="ended early"):
        for ev in ModelDownloadManager(tmp_path, opener=opener).download(DESCRIPTOR):
            events.append(ev)
    assert events[-1].success is False
    assert not (tmp_path / DESCRIPTOR.local_filename).exists()
    assert not (tmp_path / (DESCRIPTOR.local_filename + ".tmp")).exists()


def test_redirected_head_stays_head():
    handler = KeepHeadRedirectHandler()
    req = request.Request("https://models.example.invalid/tiny/resolve/main/model.bin", method="HEAD")
    new = handler.redirect_request(req, None, 302, "Found", {}, "https://cdn.example.invalid/blob/abc")
    assert new.get_method() == "HEAD"
    assert new.full_url == "https://cdn.example.invalid/blob/abc"

    get = request.Request("https://models.example.invalid/tiny/resolve/main/model.bin")
    assert handler.redirect_request(get, None, 302, "Found", {}, "https://cdn.example.invalid/blob/abc").get_method() == "GET"

"""Unit tests for media/storage.py -- Cloudinary upload adapter.

All HTTP is mocked at the requests.Session level; no network calls are made.
"""

import hashlib
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.errors import UploadError
from media.storage import CloudinaryAssetStore, UploadedAsset, discard_local_file


def _store() -> CloudinaryAssetStore:
    return CloudinaryAssetStore(cloud_name="demo", api_key="key123", api_secret="shhh")


def _response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.json.return_value = body
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "avatar.png"
    path.write_bytes(b"\x89PNG fake")
    return path


def test_upload_returns_secure_url(image) -> None:
    store = _store()
    body = {"secure_url": "https://res.cloudinary.com/demo/a.png", "url": "http://res.cloudinary.com/demo/a.png", "public_id": "a"}
    with patch.object(store._session, "post", return_value=_response(body)) as post:
        asset = store.upload(image)
    assert asset == UploadedAsset(url="https://res.cloudinary.com/demo/a.png", public_id="a")
    args, kwargs = post.call_args
    assert args[0] == "https://api.cloudinary.com/v1_1/demo/auto/upload"
    assert "file" in kwargs["files"]
    assert kwargs["files"]["file"][0] == "avatar.png"


def test_upload_falls_back_to_plain_url(image) -> None:
    store = _store()
    with patch.object(store._session, "post", return_value=_response({"url": "http://res.cloudinary.com/demo/a.png"})):
        assert store.upload(image).url == "http://res.cloudinary.com/demo/a.png"


def test_upload_is_signed(image) -> None:
    store = _store()
    with patch.object(store._session, "post", return_value=_response({"secure_url": "https://x/a.png"})) as post:
        store.upload(image)
    data = post.call_args.kwargs["data"]
    expected = hashlib.sha1(f"timestamp={data['timestamp']}shhh".encode("utf-8")).hexdigest()
    assert data["signature"] == expected
    assert data["api_key"] == "key123"
    assert "shhh" not in data.values()


def test_no_path_returns_none() -> None:
    store = _store()
    with patch.object(store._session, "post") as post:
        assert store.upload(None) is None
        assert store.upload("") is None
    post.assert_not_called()


def test_network_error_raises_upload_error(image) -> None:
    store = _store()
    with patch.object(store._session, "post", side_effect=requests.ConnectionError("boom")):
        with pytest.raises(UploadError):
            store.upload(image)


def test_rejected_upload_raises_upload_error(image) -> None:
    store = _store()
    with patch.object(store._session, "post", return_value=_response({"error": {"message": "bad"}}, status=400)):
        with pytest.raises(UploadError):
            store.upload(image)


def test_response_without_url_raises_upload_error(image) -> None:
    store = _store()
    with patch.object(store._session, "post", return_value=_response({"public_id": "a"})):
        with pytest.raises(UploadError):
            store.upload(image)


def test_missing_local_file_raises_upload_error(tmp_path) -> None:
    store = _store()
    with patch.object(store._session, "post") as post:
        with pytest.raises(UploadError):
            store.upload(tmp_path / "gone.png")
    post.assert_not_called()


def test_upload_does_not_remove_local_file(image) -> None:
    store = _store()
    with patch.object(store._session, "post", return_value=_response({"secure_url": "https://x/a.png"})):
        store.upload(image)
    assert image.exists()


def test_discard_local_file(image) -> None:
    discard_local_file(image)
    assert not image.exists()
    # Already gone, and falsy paths, are both no-ops.
    discard_local_file(image)
    discard_local_file(None)

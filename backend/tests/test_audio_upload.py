"""
Tests for audio upload validation and storage.
"""
import base64
from unittest.mock import patch

import pytest

from backend.core.errors import StoreUnavailableError, ValidationError
from backend.features.audio.service import (
    AudioLibrary,
    MAX_UPLOAD_BYTES,
    decode_audio,
    safe_file_name,
    validate_upload,
)
from backend.features.audio.storage import LocalAudioStorage
from backend.features.chat.store import ConversationStore


ALICE = {"X-User-Id": "alice"}
DATA = b"RIFF\x24\x00\x00\x00WAVEfmt "


def _payload(**overrides):
    payload = {
        "file_name": "kick loop.wav",
        "size": len(DATA),
        "mime_type": "audio/wav",
        "base64_data": base64.b64encode(DATA).decode("ascii"),
    }
    payload.update(overrides)
    return payload


def test_upload_stores_file_and_lists_it(client, storage):
    resp = client.post("/api/audio/upload", headers=ALICE, json=_payload())
    assert resp.status_code == 200
    body = resp.json()
    assert body["file_key"].startswith("audio/")
    assert body["file_key"].endswith("-kick_loop.wav")
    assert body["url"] == f"http://testserver/media/{body['file_key']}"
    assert (storage.root_dir / body["file_key"]).read_bytes() == DATA

    files = client.get("/api/audio/files", headers=ALICE).json()
    assert [f["id"] for f in files] == [body["audio_file_id"]]
    assert files[0]["size"] == len(DATA)


def test_uploaded_file_is_served_from_media(client):
    body = client.post("/api/audio/upload", headers=ALICE, json=_payload()).json()
    resp = client.get(f"/media/{body['file_key']}")
    assert resp.status_code == 200
    assert resp.content == DATA


def test_data_url_prefix_is_accepted(client):
    encoded = base64.b64encode(DATA).decode("ascii")
    resp = client.post(
        "/api/audio/upload",
        headers=ALICE,
        json=_payload(base64_data=f"data:audio/wav;base64,{encoded}"),
    )
    assert resp.status_code == 200


def test_files_are_scoped_to_owner(client):
    client.post("/api/audio/upload", headers=ALICE, json=_payload())
    assert client.get("/api/audio/files", headers={"X-User-Id": "bob"}).json() == []


def test_upload_into_foreign_conversation_is_not_found(client):
    cid = client.post(
        "/api/chat/conversations", headers={"X-User-Id": "bob"}, json={"title": "bob"}
    ).json()["conversation_id"]
    resp = client.post("/api/audio/upload", headers=ALICE, json=_payload(conversation_id=cid))
    assert resp.status_code == 404


@pytest.mark.parametrize(
    "overrides",
    [
        {"mime_type": "video/mp4"},
        {"mime_type": "application/octet-stream"},
        {"size": MAX_UPLOAD_BYTES + 1},
        {"base64_data": "not base64 at all!!"},
        {"base64_data": ""},
    ],
)
def test_invalid_uploads_rejected(client, overrides):
    resp = client.post("/api/audio/upload", headers=ALICE, json=_payload(**overrides))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"
    assert client.get("/api/audio/files", headers=ALICE).json() == []


def test_upload_requires_auth(client):
    assert client.post("/api/audio/upload", json=_payload()).status_code == 401


def test_validate_upload_boundaries():
    validate_upload(MAX_UPLOAD_BYTES, "audio/mpeg")
    validate_upload(10, "AUDIO/X-M4A")
    with pytest.raises(ValidationError):
        validate_upload(MAX_UPLOAD_BYTES + 1, "audio/mpeg")
    with pytest.raises(ValidationError):
        validate_upload(10, "audio/flac")


def test_decode_audio_rejects_garbage():
    assert decode_audio(base64.b64encode(b"abc").decode()) == b"abc"
    with pytest.raises(ValidationError):
        decode_audio("%%%")


def test_safe_file_name():
    assert safe_file_name("my track (final).mp3") == "my_track_final_.mp3"
    assert safe_file_name("../../etc/passwd") == "etc_passwd"
    assert safe_file_name("") == "audio"


def test_storage_refuses_keys_outside_root(tmp_path):
    storage = LocalAudioStorage(root_dir=str(tmp_path), public_base_url="http://testserver")
    with pytest.raises(ValueError):
        storage.put("../escape.mp3", b"x", "audio/mpeg")


def test_failed_record_insert_removes_stored_blob(db, storage, make_user):
    user = make_user("alice")
    library = AudioLibrary(db, storage, ConversationStore(db))

    with patch.object(db, "session", side_effect=StoreUnavailableError("Database unavailable")):
        with pytest.raises(StoreUnavailableError):
            library.upload(user.id, **_payload())

    assert not [p for p in storage.root_dir.rglob("*") if p.is_file()]


def test_storage_delete_ignores_missing_key(storage):
    storage.put("audio/1/kick.wav", DATA, "audio/wav")
    storage.delete("audio/1/kick.wav")
    storage.delete("audio/1/kick.wav")
    assert not (storage.root_dir / "audio/1/kick.wav").exists()

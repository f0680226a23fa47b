"""Client transfer driver: token fetch, direct blob I/O, partial failure."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
import requests

from blob_tokens.models import AccessToken, BlobListing
from blob_tokens.telemetry import TelemetrySink
from blob_tokens.transfer import FileTransfer, TokenApiClient, TransferDriver, TransferError

BASE = "https://func.example.net/api"


def _token(blob_name, permissions="rcw") -> AccessToken:
    now = datetime(2026, 10, 18, 12, tzinfo=timezone.utc)
    uri = f"https://acct.blob.core.windows.net/uploads/{blob_name}"
    return AccessToken(
        sas_token="sp=rcw&sig=x",
        blob_uri=f"{uri}?sp=rcw&sig=x",
        resource_uri=uri,
        container_name="uploads",
        blob_name=blob_name,
        permissions=permissions,
        starts_on=now - timedelta(minutes=5),
        expires_on=now + timedelta(hours=1),
    )


def _response(status=200, body=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.ok = status < 400
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


class TestTokenApiClient:
    def test_upload_token_request_and_unwrap(self):
        session = MagicMock(spec=requests.Session)
        token = _token("id_a.txt")
        session.request.return_value = _response(200, {
            "success": True, "data": token.to_json_dict(), "message": "ok", "errorCode": None,
        })
        api = TokenApiClient(BASE + "/", session=session)

        result = api.get_upload_token("a.txt", "text/plain")

        assert result == token
        session.request.assert_called_once_with(
            "POST", f"{BASE}/storage/upload-token",
            timeout=30.0, json={"fileName": "a.txt", "contentType": "text/plain"},
        )

    def test_download_token_quotes_blob_name(self):
        session = MagicMock(spec=requests.Session)
        session.request.return_value = _response(200, {"success": True, "data": _token("x").to_json_dict()})

        TokenApiClient(BASE, session=session).get_download_token("id_my file.txt")

        assert session.request.call_args.args[1] == f"{BASE}/storage/download-token/id_my%20file.txt"

    def test_error_envelope_raises_with_code(self):
        session = MagicMock(spec=requests.Session)
        session.request.return_value = _response(400, {
            "success": False, "data": None, "message": "FileName is required", "errorCode": "INVALID_REQUEST",
        })

        with pytest.raises(TransferError) as exc_info:
            TokenApiClient(BASE, session=session).get_upload_token("", "text/plain")

        assert str(exc_info.value) == "FileName is required"
        assert exc_info.value.error_code == "INVALID_REQUEST"
        assert exc_info.value.status_code == 400

    def test_non_json_response(self):
        session = MagicMock(spec=requests.Session)
        session.request.return_value = _response(502, ValueError("not json"))

        with pytest.raises(TransferError, match="Failed to list blobs"):
            TokenApiClient(BASE, session=session).list_blobs()

    @pytest.mark.parametrize("body", [[], None, "ok"])
    def test_non_object_json_response(self, body):
        session = MagicMock(spec=requests.Session)
        session.request.return_value = _response(200, body)

        with pytest.raises(TransferError, match="Failed to list blobs") as exc_info:
            TokenApiClient(BASE, session=session).list_blobs()

        assert exc_info.value.status_code == 200

    def test_list_blobs(self):
        session = MagicMock(spec=requests.Session)
        session.request.return_value = _response(200, {
            "success": True,
            "data": [{"name": "a", "uri": "https://x/a", "size": 3, "lastModified": None, "contentType": "text/plain"}],
        })

        blobs = TokenApiClient(BASE, session=session).list_blobs()

        assert blobs == [BlobListing(name="a", uri="https://x/a", size=3, content_type="text/plain")]


@pytest.fixture
def api():
    api = MagicMock(spec=TokenApiClient)
    api.get_upload_token.side_effect = lambda name, ctype: _token(f"uuid_{name}")
    api.get_download_token.side_effect = lambda name: _token(name, "r")
    return api


@pytest.fixture
def telemetry():
    return MagicMock(spec=TelemetrySink)


@pytest.fixture
def blob_clients():
    clients = {}

    def factory(url):
        client = MagicMock(name=f"BlobClient({url})")

        def upload_blob(data, length=None, progress_hook=None, **kwargs):
            payload = data.read()
            half = len(payload) // 2
            if progress_hook:
                progress_hook(half, len(payload))
                progress_hook(len(payload), len(payload))

        client.upload_blob.side_effect = upload_blob
        clients[url] = client
        return client

    factory.clients = clients
    return factory


def _events(telemetry):
    return [c.args[0] for c in telemetry.track_event.call_args_list]


class TestUpload:
    def test_upload_reports_fractional_progress(self, api, telemetry, blob_clients, tmp_path):
        path = tmp_path / "report.pdf"
        path.write_bytes(b"0123456789")
        seen = []

        result = TransferDriver(api, telemetry, blob_clients).upload(path, on_progress=seen.append)

        assert seen == [0.5, 1.0]
        assert result.status == "completed"
        assert result.progress == 1.0
        assert result.blob_name == "uuid_report.pdf"
        assert result.url == "https://acct.blob.core.windows.net/uploads/uuid_report.pdf"
        api.get_upload_token.assert_called_once_with("report.pdf", "application/pdf")

        client = blob_clients.clients[_token("uuid_report.pdf").blob_uri]
        kwargs = client.upload_blob.call_args.kwargs
        assert kwargs["overwrite"] is True
        assert kwargs["content_settings"].content_type == "application/pdf"

        assert _events(telemetry) == [
            "GetUploadToken", "UploadTokenReceived", "UploadFileStart", "UploadFileComplete",
        ]
        metrics = [c.args[1] for c in telemetry.track_metric.call_args_list]
        assert metrics == [50.0, 100.0]

    def test_unknown_extension_is_octet_stream(self, api, telemetry, blob_clients, tmp_path):
        path = tmp_path / "blob.zzunknown"
        path.write_bytes(b"x")

        TransferDriver(api, telemetry, blob_clients).upload(path)

        api.get_upload_token.assert_called_once_with("blob.zzunknown", "application/octet-stream")

    def test_failure_marks_transfer_and_reraises(self, api, telemetry, blob_clients, tmp_path):
        path = tmp_path / "a.txt"
        path.write_bytes(b"x")
        api.get_upload_token.side_effect = TransferError("Failed to generate SAS token", "TOKEN_GENERATION_FAILED")
        transfer = FileTransfer(file_name="a.txt")

        with pytest.raises(TransferError):
            TransferDriver(api, telemetry, blob_clients).upload(path, transfer=transfer)

        assert transfer.status == "error"
        assert transfer.error == "Failed to generate SAS token"
        telemetry.track_exception.assert_called_once()


class TestUploadMany:
    def test_failure_does_not_stop_remaining_files(self, api, telemetry, blob_clients, tmp_path):
        paths = []
        for name in ("one.txt", "two.txt", "three.txt"):
            p = tmp_path / name
            p.write_bytes(name.encode())
            paths.append(p)

        def token_for(name, ctype):
            if name == "two.txt":
                raise TransferError("Failed to generate SAS token", "TOKEN_GENERATION_FAILED")
            return _token(f"uuid_{name}")

        api.get_upload_token.side_effect = token_for

        results = TransferDriver(api, telemetry, blob_clients).upload_many(iter(paths))

        assert [r.file_name for r in results] == ["one.txt", "two.txt", "three.txt"]
        assert [r.status for r in results] == ["completed", "error", "completed"]
        assert results[1].error == "Failed to generate SAS token"
        assert [c.args[0] for c in api.get_upload_token.call_args_list] == ["one.txt", "two.txt", "three.txt"]

    def test_files_are_uploaded_in_order(self, api, telemetry, blob_clients, tmp_path):
        order = []
        paths = [tmp_path / "a.txt", tmp_path / "b.txt"]
        for p in paths:
            p.write_bytes(b"data")

        def progress(transfer):
            order.append((transfer.file_name, transfer.progress))

        TransferDriver(api, telemetry, blob_clients).upload_many(paths, on_progress=progress)

        assert order == [("a.txt", 0.5), ("a.txt", 1.0), ("b.txt", 0.5), ("b.txt", 1.0)]


class TestDownload:
    def test_download_writes_display_name(self, api, telemetry, tmp_path):
        seen = []

        def factory(url):
            client = MagicMock()

            def download_blob(progress_hook=None):
                if progress_hook:
                    progress_hook(4, 4)
                stream = MagicMock()
                stream.readinto.side_effect = lambda fh: fh.write(b"data")
                return stream

            client.download_blob.side_effect = download_blob
            return client

        target = TransferDriver(api, telemetry, factory).download(
            "1234_report.pdf", tmp_path / "out", on_progress=seen.append
        )

        assert target == tmp_path / "out" / "report.pdf"
        assert target.read_bytes() == b"data"
        assert seen == [1.0]
        api.get_download_token.assert_called_once_with("1234_report.pdf")
        assert _events(telemetry)[-1] == "DownloadFileComplete"

    def test_download_error_is_tracked_and_raised(self, api, telemetry, tmp_path):
        def factory(url):
            client = MagicMock()
            client.download_blob.side_effect = RuntimeError("BlobNotFound")
            return client

        with pytest.raises(RuntimeError):
            TransferDriver(api, telemetry, factory).download("missing", tmp_path)

        telemetry.track_exception.assert_called_once()
        assert "DownloadFileComplete" not in _events(telemetry)

    def test_download_keeps_file_inside_destination(self, api, telemetry, tmp_path):
        def factory(url):
            client = MagicMock()
            stream = MagicMock()
            stream.readinto.side_effect = lambda fh: fh.write(b"data")
            client.download_blob.return_value = stream
            return client

        destination = tmp_path / "downloads"
        target = TransferDriver(api, telemetry, factory).download("abc_../escaped.txt", destination)

        assert target == destination / "escaped.txt"
        assert target.read_bytes() == b"data"
        assert not (tmp_path / "escaped.txt").exists()

    @pytest.mark.parametrize("blob_name", ["abc_..", "abc_.", "abc_../", "abc_..\\..\\"])
    def test_download_rejects_unusable_file_name(self, api, telemetry, tmp_path, blob_name):
        factory = MagicMock()

        with pytest.raises(TransferError):
            TransferDriver(api, telemetry, factory).download(blob_name, tmp_path / "downloads")

        api.get_download_token.assert_not_called()
        factory.assert_not_called()
        telemetry.track_exception.assert_called_once()


class TestListBlobs:
    def test_list_emits_events(self, api, telemetry):
        api.list_blobs.return_value = []

        assert TransferDriver(api, telemetry).list_blobs() == []
        assert _events(telemetry) == ["ListBlobs", "BlobsListed"]

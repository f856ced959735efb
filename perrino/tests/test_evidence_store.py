import pytest

from perrino.core.errors import EvidenceUploadFailed, InvalidEvidence
from perrino.services.evidence_store import EvidenceUpload, LocalEvidenceStore, upload_evidence


def test_local_store_writes_file_and_returns_url(tmp_path):
    store = LocalEvidenceStore(root=str(tmp_path), base_url="/media/", max_bytes=1024)
    url = store.upload(b"\x89PNG", "image/png", "status-photos/orders/7")

    assert url.startswith("/media/status-photos/orders/7/")
    assert url.endswith(".png")
    saved = tmp_path / "status-photos" / "orders" / "7" / url.rsplit("/", 1)[1]
    assert saved.read_bytes() == b"\x89PNG"


@pytest.mark.parametrize(
    "data, content_type",
    [
        (b"%PDF", "application/pdf"),
        (b"", "image/jpeg"),
        (b"x" * 2048, "image/jpeg"),
    ],
)
def test_local_store_rejects_bad_files(tmp_path, data, content_type):
    store = LocalEvidenceStore(root=str(tmp_path), base_url="/media", max_bytes=1024)
    with pytest.raises(InvalidEvidence) as exc:
        store.upload(data, content_type, "payment-receipts/orders/1")
    assert exc.value.status_code == 422
    assert exc.value.retryable is False
    assert not (tmp_path / "payment-receipts").exists()


def test_rejected_file_is_not_reported_as_store_outage(tmp_path):
    store = LocalEvidenceStore(root=str(tmp_path), base_url="/media", max_bytes=1024)
    uploads = [EvidenceUpload(data=b"%PDF", content_type="application/pdf", filename="recibo.pdf")]

    with pytest.raises(InvalidEvidence) as exc:
        upload_evidence(store, uploads, "payment-receipts")
    assert exc.value.code == "INVALID_EVIDENCE"
    assert not exc.value.retryable


def test_disk_write_failure_is_retryable(tmp_path):
    blocker = tmp_path / "media"
    blocker.write_bytes(b"")
    store = LocalEvidenceStore(root=str(blocker), base_url="/media", max_bytes=1024)

    with pytest.raises(EvidenceUploadFailed) as exc:
        store.upload(b"\x89PNG", "image/png", "status-photos")
    assert exc.value.retryable
    assert exc.value.status_code == 502


def test_unexpected_store_errors_are_wrapped():
    class BrokenStore:
        def upload(self, data, content_type, folder):
            raise RuntimeError("bucket gone")

    with pytest.raises(EvidenceUploadFailed) as exc:
        upload_evidence(BrokenStore(), [EvidenceUpload(data=b"x", content_type="image/jpeg")], "status-photos")
    assert exc.value.retryable

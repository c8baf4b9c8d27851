import pytest

from civicfix.core.errors import ValidationError, WriteError
from civicfix.services.evidence_service import EvidenceKind, MemoryEvidenceStore


async def test_put_returns_reference():
    store = MemoryEvidenceStore()

    ref = await store.put(b"\xff\xd8jpeg", "image/jpeg", EvidenceKind.ORIGINAL_IMAGE, owner_id="citizen-ana")

    assert ref.startswith("mem://evidence/original_image/citizen-ana/")
    assert list(store.objects.values()) == [b"\xff\xd8jpeg"]


@pytest.mark.parametrize("data,content_type,kind,field", [
    (b"", "image/png", EvidenceKind.ORIGINAL_IMAGE, "file"),
    (b"abc", "audio/mpeg", EvidenceKind.COMPLETION_IMAGE, "content_type"),
    (b"abc", "image/png", EvidenceKind.AUDIO, "content_type"),
    (b"abc", None, EvidenceKind.AUDIO, "content_type"),
])
async def test_put_rejects_bad_uploads(data, content_type, kind, field):
    store = MemoryEvidenceStore()
    with pytest.raises(ValidationError) as exc_info:
        await store.put(data, content_type, kind, owner_id="citizen-ana")
    assert exc_info.value.fields == [field]
    assert store.objects == {}


async def test_put_rejects_oversized(monkeypatch):
    from civicfix.core.settings import settings

    monkeypatch.setattr(settings, "MAX_EVIDENCE_BYTES", 4)
    with pytest.raises(ValidationError):
        await MemoryEvidenceStore().put(b"12345", "image/png", EvidenceKind.ORIGINAL_IMAGE, owner_id="u")


async def test_storage_failures_are_write_errors():
    class BrokenStore(MemoryEvidenceStore):
        async def _store(self, path, data, content_type):
            raise ConnectionError("bucket unreachable")

    with pytest.raises(WriteError):
        await BrokenStore().put(b"abc", "audio/webm", EvidenceKind.AUDIO, owner_id="u")

"""
Evidence storage - photos and voice notes attached to reports.

Uploads go to Cloud Storage (or memory in mock mode) and come back as an
opaque reference that is stored on the report. References are never
interpreted by the report lifecycle.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Optional
import asyncio
import logging
import mimetypes
import uuid

from civicfix.core.errors import ValidationError, WriteError
from civicfix.core.settings import settings

logger = logging.getLogger(__name__)


class EvidenceKind(str, Enum):
    ORIGINAL_IMAGE = "original_image"
    COMPLETION_IMAGE = "completion_image"
    AUDIO = "audio"


# Accepted MIME type prefix per kind
ACCEPTED_TYPES: Dict[EvidenceKind, str] = {
    EvidenceKind.ORIGINAL_IMAGE: "image/",
    EvidenceKind.COMPLETION_IMAGE: "image/",
    EvidenceKind.AUDIO: "audio/",
}


def validate_upload(data: bytes, content_type: Optional[str], kind: EvidenceKind) -> None:
    if not data:
        raise ValidationError(["file"], "Uploaded file is empty")
    if len(data) > settings.MAX_EVIDENCE_BYTES:
        raise ValidationError(["file"], f"Uploaded file exceeds {settings.MAX_EVIDENCE_BYTES} bytes")
    if not content_type or not content_type.startswith(ACCEPTED_TYPES[kind]):
        raise ValidationError(
            ["content_type"],
            f"{kind.value} evidence must be {ACCEPTED_TYPES[kind]}*, got {content_type or 'unknown'}"
        )


def _object_path(kind: EvidenceKind, owner_id: str, content_type: str) -> str:
    extension = mimetypes.guess_extension(content_type) or ""
    return f"evidence/{kind.value}/{owner_id}/{uuid.uuid4().hex}{extension}"


class EvidenceStore(ABC):
    """
    Contract:
    - put() validates, stores the blob and returns a durable reference
    - failures raise WriteError
    """

    async def put(self, data: bytes, content_type: str, kind: EvidenceKind, owner_id: str) -> str:
        validate_upload(data, content_type, kind)
        path = _object_path(kind, owner_id, content_type)
        try:
            ref = await self._store(path, data, content_type)
        except Exception as e:
            logger.error(f"Evidence upload failed for {path}: {e}", exc_info=True)
            raise WriteError(f"Evidence upload failed: {e}") from e
        logger.info(f"Stored {kind.value} evidence ({len(data)} bytes) at {ref}")
        return ref

    @abstractmethod
    async def _store(self, path: str, data: bytes, content_type: str) -> str:
        raise NotImplementedError


class FirebaseStorageEvidenceStore(EvidenceStore):

    def __init__(self, bucket=None):
        from civicfix.config.firebase import get_bucket
        self.bucket = bucket or get_bucket()

    async def _store(self, path: str, data: bytes, content_type: str) -> str:
        blob = self.bucket.blob(path)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: blob.upload_from_string(data, content_type=content_type))
        return f"gs://{self.bucket.name}/{path}"


class MemoryEvidenceStore(EvidenceStore):

    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    async def _store(self, path: str, data: bytes, content_type: str) -> str:
        self.objects[path] = data
        return f"mem://{path}"


_evidence_store: Optional[EvidenceStore] = None


def get_evidence_store() -> EvidenceStore:
    global _evidence_store
    if _evidence_store is None:
        if settings.USE_MOCK_DB:
            _evidence_store = MemoryEvidenceStore()
        else:
            _evidence_store = FirebaseStorageEvidenceStore()
    return _evidence_store


def set_evidence_store(store: Optional[EvidenceStore]) -> None:
    global _evidence_store
    _evidence_store = store

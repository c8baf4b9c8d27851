"""
Evidence upload endpoint. Returns a reference to put on a report.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from civicfix.core.errors import PermissionDeniedError, ReportError
from civicfix.models.user import User
from civicfix.routes.deps import get_current_user, to_http_exception
from civicfix.services.evidence_service import EvidenceKind, get_evidence_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/evidence", tags=["Evidence"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_evidence(
    kind: EvidenceKind = Form(..., description="original_image, completion_image or audio"),
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
):
    """
    Store a photo or voice note.

    Completion photos are staff-only; citizens upload the original photo
    and voice note with their submission.
    """
    try:
        if kind == EvidenceKind.COMPLETION_IMAGE and not user.is_staff:
            raise PermissionDeniedError("Only employees can upload completion evidence")
        data = await file.read()
        ref = await get_evidence_store().put(data, file.content_type, kind, owner_id=user.id)
    except ReportError as e:
        raise to_http_exception(e)
    return {"ref": ref, "kind": kind.value}

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from crm_api.core.deps import require_csrf_header, require_user
from crm_api.db.session import get_session
from crm_api.models.enums import OverwriteMode
from crm_api.models.identity import User
from crm_api.schemas.contacts import (
    BulkArchiveRequest,
    BulkArchiveResponse,
    ContactCreateRequest,
    ContactImportPreviewRequest,
    ContactImportPreviewResponse,
    ContactImportRequest,
    ContactImportResponse,
    ContactOut,
    ContactUpdateRequest,
    TouchpointStatusRequest,
)
from crm_api.services.contacts.csv_io import contacts_to_csv, merge_contact_rows, parse_contacts_csv
from crm_api.services.contacts.ids import normalize_email
from crm_api.services.contacts.importer import (
    ImportPermissionError,
    count_existing_contacts,
    import_contacts_batch,
    test_write_permissions,
)
from crm_api.services.contacts.records import (
    bulk_archive_contacts,
    create_contact,
    delete_contact,
    get_contact,
    list_contacts,
    update_contact,
    update_touchpoint_status,
)

router = APIRouter(prefix="/contacts", tags=["contacts"], dependencies=[Depends(require_csrf_header)])

MAX_CSV_BYTES = 5 * 1024 * 1024


@router.get("", response_model=list[ContactOut])
def contacts_list(
    archived: bool | None = Query(default=None),
    segment: str | None = Query(default=None, max_length=200),
    q: str | None = Query(default=None, max_length=200),
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> list[ContactOut]:
    rows = list_contacts(session=session, user_id=user.id, archived=archived, segment=segment, q=q)
    return [ContactOut.model_validate(c) for c in rows]


@router.post("", response_model=ContactOut, status_code=status.HTTP_201_CREATED)
def contacts_create(
    payload: ContactCreateRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ContactOut:
    contact = create_contact(
        session=session,
        user_id=user.id,
        email=payload.primary_email,
        fields=payload.model_dump(exclude_unset=True, exclude={"primary_email"}),
    )
    session.commit()
    return ContactOut.model_validate(contact)


@router.get("/export")
def contacts_export(
    archived: bool | None = Query(default=None),
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> Response:
    rows = list_contacts(session=session, user_id=user.id, archived=archived)
    filename = f"contacts_export_{datetime.now(UTC).date().isoformat()}.csv"
    return Response(
        content=contacts_to_csv(rows),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Cache-Control": "no-store",
        },
    )


def _run_import(
    *,
    session: Session,
    user: User,
    rows: list[dict[str, str]],
    overwrite_mode: OverwriteMode,
) -> ContactImportResponse:
    folded, merged = merge_contact_rows(rows)

    sample_email = next((normalize_email(r.get("Email", "")) for r in folded if r.get("Email", "").strip()), None)
    if sample_email:
        try:
            test_write_permissions(session, user_id=user.id, email=sample_email)
        except ImportPermissionError as e:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Permission test failed: {e}",
            ) from e

    progress = import_contacts_batch(
        session,
        user_id=user.id,
        rows=folded,
        overwrite_mode=overwrite_mode,
        merged=merged,
    )
    return ContactImportResponse(
        imported=progress.imported,
        skipped=progress.skipped,
        errors=progress.errors,
        total=progress.total,
        merged=progress.merged,
        error_details=progress.error_details,
    )


@router.post("/import", response_model=ContactImportResponse)
def contacts_import(
    payload: ContactImportRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ContactImportResponse:
    return _run_import(session=session, user=user, rows=payload.rows, overwrite_mode=payload.overwrite_mode)


@router.post("/import/csv", response_model=ContactImportResponse)
def contacts_import_csv(
    file: UploadFile = File(...),
    overwrite_mode: OverwriteMode = Query(default=OverwriteMode.skip),
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ContactImportResponse:
    raw = file.file.read(MAX_CSV_BYTES + 1)
    if len(raw) > MAX_CSV_BYTES:
        raise HTTPException(status_code=status.HTTP_413_CONTENT_TOO_LARGE, detail="CSV file too large")
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="CSV must be UTF-8 encoded",
        ) from e

    rows = parse_contacts_csv(text)
    return _run_import(session=session, user=user, rows=rows, overwrite_mode=overwrite_mode)


@router.post("/import/preview", response_model=ContactImportPreviewResponse)
def contacts_import_preview(
    payload: ContactImportPreviewRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ContactImportPreviewResponse:
    folded, merged = merge_contact_rows(payload.rows)
    existing = count_existing_contacts(session, user_id=user.id, rows=folded)
    total = len(folded)
    return ContactImportPreviewResponse(
        total=total,
        existing=existing,
        new=max(0, total - existing),
        merged=merged,
    )


@router.post("/bulk-archive", response_model=BulkArchiveResponse)
def contacts_bulk_archive(
    payload: BulkArchiveRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> BulkArchiveResponse:
    result = bulk_archive_contacts(
        session=session,
        user_id=user.id,
        contact_ids=payload.contact_ids,
        archived=payload.archived,
    )
    session.commit()
    return BulkArchiveResponse(
        success=result.success,
        errors=result.errors,
        error_details=result.error_details,
    )


@router.get("/{contact_id}", response_model=ContactOut)
def contacts_get(
    contact_id: str,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ContactOut:
    return ContactOut.model_validate(get_contact(session=session, user_id=user.id, contact_id=contact_id))


@router.patch("/{contact_id}", response_model=ContactOut)
def contacts_update(
    contact_id: str,
    payload: ContactUpdateRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ContactOut:
    contact = update_contact(
        session=session,
        user_id=user.id,
        contact_id=contact_id,
        fields=payload.model_dump(exclude_unset=True),
    )
    session.commit()
    return ContactOut.model_validate(contact)


@router.delete("/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def contacts_delete(
    contact_id: str,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> Response:
    delete_contact(session=session, user_id=user.id, contact_id=contact_id)
    session.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{contact_id}/touchpoint-status", response_model=ContactOut)
def contacts_touchpoint_status(
    contact_id: str,
    payload: TouchpointStatusRequest,
    user: User = Depends(require_user),
    session: Session = Depends(get_session),
) -> ContactOut:
    contact = update_touchpoint_status(
        session=session,
        user_id=user.id,
        contact_id=contact_id,
        touchpoint_status=payload.status,
        reason=payload.reason,
        reason_provided="reason" in payload.model_fields_set,
    )
    session.commit()
    return ContactOut.model_validate(contact)

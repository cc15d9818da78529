from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.logs import import_logger, log_json
from crm_api.core.metrics import observe_contact_import
from crm_api.db.errors import StoreQuotaExceededError, StoreWriteTimeoutError, translate_store_errors
from crm_api.db.upsert import insert_if_absent, merge_upsert, statement_timeout
from crm_api.models.crm import Contact
from crm_api.models.enums import OverwriteMode
from crm_api.services.contacts.csv_io import csv_row_to_contact
from crm_api.services.contacts.ids import normalize_contact_id, normalize_email


@dataclass
class BatchImportProgress:
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    total: int = 0
    error_details: list[str] = field(default_factory=list)
    # Duplicate rows folded into another row before the import started.
    merged: int = 0

    def snapshot(self) -> BatchImportProgress:
        return replace(self, error_details=list(self.error_details))


class ImportPermissionError(RuntimeError):
    pass


_IMPORTED = "imported"
_SKIPPED = "skipped"


def _import_row(
    session: Session,
    *,
    user_id: str,
    email: str,
    row: dict[str, str],
    overwrite_mode: OverwriteMode,
    timeout_ms: int,
) -> str:
    contact_id = normalize_contact_id(email)
    key = {"user_id": user_id, "contact_id": contact_id}
    values = csv_row_to_contact(row, contact_id)
    values.pop("contact_id")
    now = datetime.now(UTC)

    with session.begin_nested(), statement_timeout(session, timeout_ms=timeout_ms):
        with translate_store_errors(timeout_message=f"Write timeout after {timeout_ms // 1000} seconds"):
            if overwrite_mode == OverwriteMode.skip:
                created = insert_if_absent(
                    session,
                    Contact,
                    key=key,
                    values={**values, "archived": False, "created_at": now, "updated_at": now},
                )
                return _IMPORTED if created else _SKIPPED

            # created_at and archived belong to the existing row and survive an overwrite.
            merge_upsert(
                session,
                Contact,
                key=key,
                values={**values, "updated_at": now},
                insert_only={"archived": False, "created_at": now},
            )
            return _IMPORTED


def import_contacts_batch(
    session: Session,
    *,
    user_id: str,
    rows: list[dict[str, str]],
    overwrite_mode: OverwriteMode,
    batch_size: int | None = None,
    on_progress: Callable[[BatchImportProgress], None] | None = None,
    merged: int = 0,
) -> BatchImportProgress:
    settings = get_settings()
    batch_size = max(1, batch_size or settings.CONTACT_IMPORT_BATCH_SIZE)
    progress = BatchImportProgress(total=len(rows), merged=merged)

    for start in range(0, len(rows), batch_size):
        chunk = rows[start : start + batch_size]
        for row in chunk:
            raw_email = (row.get("Email") or "").strip()
            email = normalize_email(raw_email)
            if not email:
                progress.errors += 1
                progress.error_details.append(f"{raw_email or 'Unknown'}: No email")
                continue

            try:
                outcome = _import_row(
                    session,
                    user_id=user_id,
                    email=email,
                    row=row,
                    overwrite_mode=overwrite_mode,
                    timeout_ms=settings.CONTACT_IMPORT_WRITE_TIMEOUT_MS,
                )
            except StoreQuotaExceededError:
                raise
            except Exception as e:  # noqa: BLE001
                # Any other failure mapping or writing this row is a row error; the chunk continues.
                progress.errors += 1
                progress.error_details.append(f"{raw_email}: {str(e) or type(e).__name__}")
                continue

            if outcome == _SKIPPED:
                progress.skipped += 1
            else:
                progress.imported += 1

        session.commit()
        if on_progress is not None:
            on_progress(progress.snapshot())

    log_json(
        import_logger,
        "contacts.import.completed",
        level=logging.INFO if progress.errors == 0 else logging.WARNING,
        user_id=user_id,
        overwrite_mode=overwrite_mode,
        total=progress.total,
        imported=progress.imported,
        skipped=progress.skipped,
        errors=progress.errors,
        merged=progress.merged,
    )
    observe_contact_import(
        overwrite_mode=overwrite_mode,
        imported=progress.imported,
        skipped=progress.skipped,
        errors=progress.errors,
    )
    return progress


def test_write_permissions(session: Session, *, user_id: str, email: str) -> None:
    """Attempt a contact write that is always rolled back."""
    settings = get_settings()
    timeout_ms = settings.STORE_PERMISSION_TEST_TIMEOUT_MS
    contact_id = normalize_contact_id(email)
    now = datetime.now(UTC)

    nested = session.begin_nested()
    try:
        with statement_timeout(session, timeout_ms=timeout_ms), translate_store_errors(
            timeout_message="Permission test timeout - database may be blocking writes"
        ):
            merge_upsert(
                session,
                Contact,
                key={"user_id": user_id, "contact_id": contact_id},
                values={"updated_at": now},
                insert_only={"primary_email": normalize_email(email), "created_at": now},
            )
    except (StoreWriteTimeoutError, DBAPIError) as e:
        raise ImportPermissionError(str(e)) from e
    finally:
        nested.rollback()


# Keep pytest from collecting this when a test module imports it.
test_write_permissions.__test__ = False  # type: ignore[attr-defined]


def count_existing_contacts(session: Session, *, user_id: str, rows: list[dict[str, str]]) -> int:
    ids_by_row: list[str] = []
    for row in rows:
        email = normalize_email(row.get("Email", ""))
        if email:
            ids_by_row.append(normalize_contact_id(email))
    if not ids_by_row:
        return 0

    existing = set(
        session.execute(
            select(Contact.contact_id).where(
                Contact.user_id == user_id,
                Contact.contact_id.in_(set(ids_by_row)),
            )
        )
        .scalars()
        .all()
    )
    return sum(1 for contact_id in ids_by_row if contact_id in existing)

"""
Receipt API endpoints.

POST /api/receipts           — upload receipt files (signed in or anonymous)
POST /api/receipts/migrate   — move a temp session's receipts to the caller
POST /api/receipts/process   — run extraction on unprocessed receipts
GET  /api/receipts           — list the caller's receipts
GET  /api/receipts/summary   — totals for an anonymous session
"""
from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from grocery_receipts.dependencies import get_lifecycle
from grocery_receipts.errors import BadRequestError, NotFoundError, UnauthorizedError
from grocery_receipts.lifecycle.controller import (
    BatchReport,
    ReceiptLifecycle,
    UploadedFile,
)
from grocery_receipts.lifecycle.ownership import Owner, SessionOwner, UserOwner
from grocery_receipts.lifecycle.store import to_receipt_out
from grocery_receipts.schemas import (
    BatchResponse,
    ItemFailure,
    MigrateRequest,
    ProcessRequest,
    ReceiptOut,
    SessionSummary,
    UploadResponse,
)
from grocery_receipts.services.auth import CurrentUser, get_current_user, get_optional_user

logger = logging.getLogger(__name__)
router = APIRouter()


def transform_report(report: BatchReport) -> BatchResponse:
    """BatchReport -> BatchResponse"""
    return BatchResponse(
        receipts=[to_receipt_out(r) for r in report.succeeded],
        failed=[ItemFailure(receipt_id=f.receipt_id, reason=f.reason) for f in report.failed],
    )


# ── POST /api/receipts ───────────────────────────────────────────────────
@router.post("/receipts", response_model=UploadResponse)
def upload_receipts(
    file: Optional[List[UploadFile]] = File(None),
    store_name: Optional[str] = Form(None, alias="storeName"),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    lifecycle: ReceiptLifecycle = Depends(get_lifecycle),
):
    if not file:
        raise BadRequestError("Missing required fields: file")

    owner: Owner
    if user is not None:
        owner = UserOwner(user.user_id)
        session_id = None
    else:
        session_id = session_id or str(uuid.uuid4())
        owner = SessionOwner(session_id)

    uploads = [
        UploadedFile(
            filename=f.filename or "receipt",
            content_type=f.content_type or "",
            data=f.file.read(),
        )
        for f in file
    ]
    logger.info("Upload: %d file(s) for %s %s", len(uploads), owner.kind, owner.owner_id)

    receipts = lifecycle.upload(uploads, owner, store_name=store_name)
    return UploadResponse(
        receipts=[to_receipt_out(r) for r in receipts],
        session_id=session_id,
    )


# ── POST /api/receipts/migrate ───────────────────────────────────────────
@router.post("/receipts/migrate", response_model=BatchResponse)
def migrate_receipts(
    req: MigrateRequest,
    user: CurrentUser = Depends(get_current_user),
    lifecycle: ReceiptLifecycle = Depends(get_lifecycle),
):
    report = lifecycle.migrate(user.user_id, req.session_id)
    if not report.succeeded:
        raise NotFoundError("No files were migrated")
    return transform_report(report)


# ── POST /api/receipts/process ───────────────────────────────────────────
@router.post("/receipts/process", response_model=BatchResponse)
def process_receipts(
    req: ProcessRequest,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    lifecycle: ReceiptLifecycle = Depends(get_lifecycle),
):
    if req.session_id:
        report = lifecycle.extract(SessionOwner(req.session_id))
    elif req.receipt_ids is not None:
        if user is None:
            raise UnauthorizedError("Missing token")
        report = lifecycle.extract(UserOwner(user.user_id), req.receipt_ids)
    else:
        raise BadRequestError("Provide receiptIds or sessionId")

    logger.info("Processed %d receipt(s), %d failed", len(report.succeeded), len(report.failed))
    return transform_report(report)


# ── GET /api/receipts/summary ────────────────────────────────────────────
@router.get("/receipts/summary", response_model=SessionSummary)
def session_summary(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    lifecycle: ReceiptLifecycle = Depends(get_lifecycle),
):
    if not session_id:
        raise BadRequestError("Session ID is required")
    total_amount, total_items = lifecycle.session_summary(session_id)
    return SessionSummary(total_amount=total_amount, total_items=total_items)


# ── GET /api/receipts ────────────────────────────────────────────────────
@router.get("/receipts", response_model=List[ReceiptOut])
def list_receipts(
    user: CurrentUser = Depends(get_current_user),
    lifecycle: ReceiptLifecycle = Depends(get_lifecycle),
):
    rows = lifecycle.store.for_owner(UserOwner(user.user_id))
    logger.info("Found %d receipts for user %s", len(rows), user.user_id)
    return [to_receipt_out(r) for r in rows]

"""
FastAPI dependencies wiring request-scoped DB sessions to the lifecycle layer.
"""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from grocery_receipts.database import get_db
from grocery_receipts.lifecycle.controller import ReceiptLifecycle
from grocery_receipts.lifecycle.insights import InsightsService


def get_lifecycle(request: Request, db: Session = Depends(get_db)) -> ReceiptLifecycle:
    return request.app.state.services.lifecycle(db)


def get_insights(request: Request, db: Session = Depends(get_db)) -> InsightsService:
    return request.app.state.services.insights(db)

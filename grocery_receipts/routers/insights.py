"""
Insights API endpoints.

GET  /api/insights            — numeric rollup over the caller's processed receipts
POST /api/insights/generate   — AI narrative for the caller or a temp session
GET  /api/insights/narrative  — last stored narrative
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends

from grocery_receipts.dependencies import get_insights
from grocery_receipts.errors import UnauthorizedError
from grocery_receipts.lifecycle.insights import InsightsService
from grocery_receipts.lifecycle.ownership import SessionOwner, UserOwner
from grocery_receipts.schemas import InsightsGenerateRequest, InsightsRollup, NarrativeInsights
from grocery_receipts.services.auth import CurrentUser, get_current_user, get_optional_user

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/insights", response_model=InsightsRollup)
def get_insights_rollup(
    user: CurrentUser = Depends(get_current_user),
    insights: InsightsService = Depends(get_insights),
):
    rollup = insights.rollup(UserOwner(user.user_id))
    logger.info("Rollup for user %s over %d receipts", user.user_id, rollup.total_receipts)
    return rollup


@router.post("/insights/generate", response_model=NarrativeInsights)
def generate_insights(
    req: Optional[InsightsGenerateRequest] = Body(None),
    user: Optional[CurrentUser] = Depends(get_optional_user),
    insights: InsightsService = Depends(get_insights),
):
    if req is not None and req.session_id:
        return insights.generate_narrative(SessionOwner(req.session_id))
    if user is None:
        raise UnauthorizedError("Missing token")
    return insights.generate_narrative(UserOwner(user.user_id))


@router.get("/insights/narrative", response_model=NarrativeInsights)
def get_latest_narrative(
    user: CurrentUser = Depends(get_current_user),
    insights: InsightsService = Depends(get_insights),
):
    return insights.latest_narrative(UserOwner(user.user_id))

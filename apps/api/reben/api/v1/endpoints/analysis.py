from fastapi import APIRouter, Depends

from reben.auth.tenants import TenantContext, require_manager
from reben.services.ai_analysis import (
    BurnoutInput,
    BurnoutPrediction,
    WellnessAnalysis,
    WellnessInput,
    analyze_wellness,
    predict_burnout_risk,
)

router = APIRouter()
manager_dependency = Depends(require_manager)


@router.post("/analysis/wellness")
async def wellness_analysis(
    payload: WellnessInput,
    context: TenantContext = manager_dependency,
) -> WellnessAnalysis:
    return await analyze_wellness(payload)


@router.post("/analysis/burnout")
async def burnout_prediction(
    payload: BurnoutInput,
    context: TenantContext = manager_dependency,
) -> BurnoutPrediction:
    return await predict_burnout_risk(payload)

# Restocking report 接口 -> 前端首页按时间窗口生成报表
import logging
from typing import Any, Dict, List, Optional

import requests
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.api.deps import ShopifyClientFactory, get_shopify_client_factory, resolve_shop
from app.integrations.shopify.errors import ShopifyError
from app.orchestration.errors import InputValidationError
from app.orchestration.restocking_report.restocking_report import build_restocking_report, parse_date_range

logger = logging.getLogger(__name__)

router = APIRouter(tags=["restocking-report"])


class RestockingReportRequest(BaseModel):
    startDate: str
    endDate: str


class RestockingRow(BaseModel):
    productTitle: str
    productVariantTitle: str
    sku: str
    vendor: str
    productType: str
    netItemsSold: int
    locations: Dict[str, Any]


class RestockingReportResponse(BaseModel):
    rows: List[RestockingRow]
    locationNames: List[str]
    timestamp: str
    ordersScanned: int
    startDate: str
    endDate: str


@router.post("/restocking-report", response_model=RestockingReportResponse)
def restocking_report(
    body: RestockingReportRequest,
    shop: Optional[str] = Depends(resolve_shop),
    shopify_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
) -> RestockingReportResponse:
    if not shop:
        raise HTTPException(status_code=500, detail="Missing shop domain.")
    try:
        start, end = parse_date_range(body.startDate, body.endDate)
    except InputValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        report = build_restocking_report(shopify_factory(shop), start, end)
    except (ShopifyError, requests.RequestException) as exc:
        logger.warning("restocking.failed shop=%s err=%s", shop, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return RestockingReportResponse(**report, startDate=body.startDate, endDate=body.endDate)

# Markdown report 任务控制接口 -> 前端报表页表单提交 / 轮询调用
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Form
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import (
    ShopifyClientFactory, StockyApiFactory,
    get_shopify_client_factory, get_stocky_api_factory, require_stocky_api_key, resolve_shop,
)
from app.core.config import settings
from app.db.session import get_db
from app.orchestration.errors import (
    ConfigurationError, InputValidationError, JobBusyError, JobNotFoundError, ReportRunFailedError,
)
from app.orchestration.markdown_report.report_job import (
    continue_report, parse_int_field, start_report, validate_report_inputs,
)
from app.orchestration.stocky_sync.stocky_sync import busy_chunk_payload, run_full_sync_chunk, run_quick_sync

logger = logging.getLogger(__name__)

router = APIRouter(tags=["markdown-report"])

MISSING_SHOP_MESSAGE = "Missing shop domain (needed for Stocky + caching)."


def _reply(inputs: Dict[str, int], status_code: int = 200, **body: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"inputs": inputs, **body})


@router.post("/markdown-report")
def markdown_report_action(
    intent: str = Form("reportStart"),
    periodQtySoldLTE: Optional[str] = Form(None),
    lookBackDays: Optional[str] = Form(None),
    jobId: Optional[str] = Form(None),
    mode: Optional[str] = Form(None),
    shop: Optional[str] = Depends(resolve_shop),
    db: Session = Depends(get_db),
    shopify_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
    stocky_factory: StockyApiFactory = Depends(get_stocky_api_factory),
) -> JSONResponse:
    """
    一个端点按 intent 分发：
      reportStart / reportContinue / stockyFullSync(mode=start|continue) / stockyQuickSync
    响应：{inputs, report|fullSync|message|error}；400 参数错误，500 缺配置，其余 200。
    """
    inputs = {
        "periodQtySoldLTE": parse_int_field(periodQtySoldLTE, 0),
        "lookBackDays": parse_int_field(lookBackDays, settings.REPORT_DEFAULT_LOOK_BACK_DAYS),
    }

    if not shop:
        return _reply(inputs, 500, error=MISSING_SHOP_MESSAGE)

    if intent == "stockyFullSync":
        return _full_sync(db, shop, inputs, start_fresh=(mode or "continue") == "start", stocky_factory=stocky_factory)

    if intent == "stockyQuickSync":
        return _quick_sync(db, shop, inputs, stocky_factory=stocky_factory)

    if intent == "reportStart":
        return _report_start(db, shop, inputs, shopify_factory=shopify_factory)

    if intent == "reportContinue":
        return _report_continue(db, shop, inputs, job_id=(jobId or "").strip(), shopify_factory=shopify_factory)

    return _reply(inputs, 400, error=f"Unknown intent: {intent}")


# ---------- Stocky ----------
def _full_sync(db: Session, shop: str, inputs: Dict[str, int], *, start_fresh: bool,
               stocky_factory: StockyApiFactory) -> JSONResponse:
    try:
        require_stocky_api_key()
    except ConfigurationError as e:
        return _reply(inputs, 500, error=str(e))

    try:
        chunk = run_full_sync_chunk(db, shop=shop, api=stocky_factory(shop), start_fresh=start_fresh)
    except JobBusyError as e:
        return _reply(inputs, fullSync=busy_chunk_payload(db, shop, e.retry_after_ms))
    except Exception as e:
        logger.exception("stocky.full_sync.failed shop=%s", shop)
        return _reply(inputs, error=f"Full Sync failed: {e}")
    return _reply(inputs, fullSync=chunk)


def _quick_sync(db: Session, shop: str, inputs: Dict[str, int], *, stocky_factory: StockyApiFactory) -> JSONResponse:
    try:
        require_stocky_api_key()
    except ConfigurationError as e:
        return _reply(inputs, 500, error=str(e))

    try:
        result = run_quick_sync(db, shop=shop, api=stocky_factory(shop))
    except Exception as e:
        logger.exception("stocky.quick_sync.failed shop=%s", shop)
        return _reply(inputs, error=f"Quick Sync failed: {e}")
    return _reply(inputs, message=result.message)


# ---------- Report ----------
def _report_start(db: Session, shop: str, inputs: Dict[str, int], *,
                  shopify_factory: ShopifyClientFactory) -> JSONResponse:
    try:
        qty, days = validate_report_inputs(inputs["periodQtySoldLTE"], inputs["lookBackDays"])
    except InputValidationError as e:
        return _reply(inputs, 400, error=str(e))

    try:
        report = start_report(
            db, shop=shop, client=shopify_factory(shop), period_qty_sold_lte=qty, look_back_days=days,
        )
    except Exception as e:
        logger.exception("markdown_report.start_failed shop=%s", shop)
        return _reply(inputs, error=str(e))
    return _reply(inputs, report=report)


def _report_continue(db: Session, shop: str, inputs: Dict[str, int], *, job_id: str,
                     shopify_factory: ShopifyClientFactory) -> JSONResponse:
    if not job_id:
        return _reply(inputs, 400, error="Missing jobId.")

    try:
        report = continue_report(db, shop=shop, run_id=job_id, client=shopify_factory(shop))
    except JobBusyError as e:
        return _reply(inputs, report={
            "jobId": job_id,
            "done": False,
            "status": "running",
            "busy": True,
            "suggestedNextPollMs": e.retry_after_ms,
        })
    except (JobNotFoundError, ReportRunFailedError) as e:
        logger.info("markdown_report.continue_rejected shop=%s job=%s err=%s", shop, job_id, e)
        return _reply(inputs, error=str(e))
    except Exception as e:
        logger.exception("markdown_report.continue_failed shop=%s job=%s", shop, job_id)
        return _reply(inputs, error=str(e))
    return _reply(inputs, report=report)

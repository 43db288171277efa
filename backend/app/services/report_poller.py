
"""
客户端轮询器：模拟嵌入式页面的行为，用表单提交驱动服务端分片任务直到完成。
  - run_markdown_report：reportStart → reportContinue ... → done，返回最终 report
  - run_full_sync：stockyFullSync(mode=start) → (mode=continue) ... → done
每轮按服务端给的 suggestedNextPollMs 等待；error 载荷或超过 max_polls 抛 PollerError。
"""

from __future__ import annotations
import logging, time
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

MARKDOWN_REPORT_PATH = "/api/v1/markdown-report"


class PollerError(RuntimeError):
    """服务端返回 error 载荷，或轮询次数用尽。"""


ProgressCallback = Callable[[Dict[str, Any]], None]


class ReportPoller:

    def __init__(
        self,
        base_url: str,
        shop: str,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = 60.0,
        max_polls: int = 500,
        default_poll_ms: int = 1000,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.shop = shop
        self.session = session or requests.Session()
        self._sleep = sleep
        self.timeout = timeout
        self.max_polls = max(1, int(max_polls))
        self.default_poll_ms = int(default_poll_ms)


    # ---------- Public ----------
    def run_markdown_report(
        self,
        period_qty_sold_lte: int,
        look_back_days: int,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Dict[str, Any]:
        form = {
            "intent": "reportStart",
            "periodQtySoldLTE": str(period_qty_sold_lte),
            "lookBackDays": str(look_back_days),
        }
        report = self._submit(form)["report"]

        for _ in range(self.max_polls):
            if on_progress:
                on_progress(report)
            if report.get("done"):
                return report
            self._wait(report)
            form = {**form, "intent": "reportContinue", "jobId": report["jobId"]}
            report = self._submit(form)["report"]

        raise PollerError(f"Report job {report.get('jobId')} not done after {self.max_polls} polls")


    def run_full_sync(self, start_fresh: bool = True, on_progress: Optional[ProgressCallback] = None) -> Dict[str, Any]:
        mode = "start" if start_fresh else "continue"
        chunk = self._submit({"intent": "stockyFullSync", "mode": mode})["fullSync"]

        for _ in range(self.max_polls):
            if on_progress:
                on_progress(chunk)
            if chunk.get("done"):
                return chunk
            self._wait(chunk)
            chunk = self._submit({"intent": "stockyFullSync", "mode": "continue"})["fullSync"]

        raise PollerError(f"Full sync not done after {self.max_polls} polls")


    def run_quick_sync(self) -> str:
        return self._submit({"intent": "stockyQuickSync"})["message"]


    # ---------- Internals ----------
    def _submit(self, form: Dict[str, str]) -> Dict[str, Any]:
        resp = self.session.post(
            self.base_url + MARKDOWN_REPORT_PATH,
            params={"shop": self.shop},
            data=form,
            timeout=self.timeout,
        )
        try:
            payload = resp.json()
        except ValueError as e:
            raise PollerError(f"non-JSON response (status={resp.status_code})") from e

        if not isinstance(payload, dict):
            raise PollerError(f"unexpected response (status={resp.status_code})")
        if payload.get("error"):
            logger.warning("poller.error intent=%s status=%s err=%s", form.get("intent"), resp.status_code, payload["error"])
            raise PollerError(str(payload["error"]))
        if resp.status_code >= 400:
            raise PollerError(f"HTTP {resp.status_code}")
        return payload


    def _wait(self, progress: Dict[str, Any]) -> None:
        delay_ms = progress.get("suggestedNextPollMs") or self.default_poll_ms
        self._sleep(max(0, int(delay_ms)) / 1000.0)


# 聚合导入所有模型，供 Alembic 发现

from .report_run import ReportRunState
from .stocky import StockySyncState, StockySkuReceipt

__all__ = [
    # markdown report
    "ReportRunState",
    # stocky cache
    "StockySyncState", "StockySkuReceipt",
]

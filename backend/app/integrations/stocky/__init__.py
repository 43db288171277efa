
"""
对外统一入口（Public Surface）：
- 从这里 import 需要的类/函数，内部实现可自由演进。
"""

from .http_client import StockyHttpClient
from .purchase_orders import StockyPurchaseOrdersAPI, iter_received_items

from .errors import (
    StockyError, StockyClientError, StockyTimeoutError, StockyRateLimitError, StockyUpstreamError, StockyPayloadError,
)


__all__ = [
    "StockyHttpClient",
    "StockyPurchaseOrdersAPI", "iter_received_items",
    "StockyError", "StockyClientError", "StockyTimeoutError", "StockyRateLimitError",
    "StockyUpstreamError", "StockyPayloadError",
]


"""
对外统一入口（Public Surface）：
- 从这里 import 需要的类/函数，内部实现可自由演进。
"""

from .errors import ShopifyError, ShopifyConfigError, ShopifyQueryError
from .shopify_client import (
    ShopifyClient, OrdersPage, VariantsPage, VariantScan, RestockingOrdersPage, extract_connection,
)


__all__ = [
    "ShopifyClient", "OrdersPage", "VariantsPage", "VariantScan", "RestockingOrdersPage", "extract_connection",
    "ShopifyError", "ShopifyConfigError", "ShopifyQueryError",
]

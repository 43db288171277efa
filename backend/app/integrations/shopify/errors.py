
"""Shopify Admin GraphQL 集成层异常。"""


class ShopifyError(Exception):
    """Base for all Shopify integration errors."""


class ShopifyConfigError(ShopifyError):
    """Shop domain or admin token missing."""


class ShopifyQueryError(ShopifyError):
    """
    传输成功但语义失败：顶层 GraphQL errors，或响应里没有期望的 connection。
    同一查询重试通常仍会失败。
    """

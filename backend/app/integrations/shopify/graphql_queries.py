# Admin GraphQL 查询文本 + search 语法拼接

def orders_since_filter(since_iso: str) -> str:
    # ISO-8601 Z 时间戳本身不含空格，直接拼接
    return f"created_at:>={since_iso}"


# Markdown report：按时间窗口扫描订单，只取聚合需要的字段
# 订单按 CREATED_AT 正序，cursor 取最后一条 edge 的 cursor
ORDERS_SINCE = """
query OrdersSince($q: String!, $after: String, $first: Int!, $lineItemsFirst: Int!) {
  orders(first: $first, after: $after, query: $q, sortKey: CREATED_AT) {
    edges {
      cursor
      node {
        createdAt
        lineItems(first: $lineItemsFirst) {
          edges {
            node {
              quantity
              variant { id }
            }
          }
        }
      }
    }
    pageInfo { hasNextPage }
  }
}
""".strip()


# Markdown report：在售变体（库存/成本/产品信息）
ACTIVE_VARIANTS = """
query AllVariants($after: String, $q: String!, $first: Int!) {
  productVariants(first: $first, after: $after, query: $q) {
    edges {
      cursor
      node {
        id
        title
        sku
        inventoryQuantity
        product { title vendor productType }
        inventoryItem {
          sku
          unitCost { amount currencyCode }
        }
      }
    }
    pageInfo { hasNextPage }
  }
}
""".strip()

ACTIVE_VARIANTS_FILTER = "status:active"


# Restocking report：最近订单倒序 + 每个变体各仓位的 available 库存
RESTOCKING_ORDERS = """
query RestockingReportOrders($cursor: String, $first: Int!) {
  orders(first: $first, after: $cursor, sortKey: CREATED_AT, reverse: true) {
    edges {
      cursor
      node {
        createdAt
        lineItems(first: 50) {
          edges {
            node {
              quantity
              product { title vendor productType }
              variant {
                title
                sku
                inventoryItem {
                  inventoryLevels(first: 5) {
                    edges {
                      node {
                        quantities(names: "available") {
                          name
                          quantity
                        }
                        location { name }
                      }
                    }
                  }
                }
              }
            }
          }
        }
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
""".strip()


"""编排层异常：由 service 抛出，路由层统一转成 JSON / HTTP 状态码。"""


class OrchestrationError(Exception):
    """Base for job-level errors."""


class InputValidationError(OrchestrationError):
    """报表参数非法（400）。"""


class ConfigurationError(OrchestrationError):
    """缺少必需配置，例如 STOCKY_API_KEY 或店铺域名（500）。"""


class JobNotFoundError(OrchestrationError):
    """任务不存在、已被清理，或属于其他店铺。"""

    def __init__(self, job_id: str):
        super().__init__(f"Report job not found: {job_id}")
        self.job_id = job_id


class JobBusyError(OrchestrationError):
    """同一任务已有分片在执行（租约未过期），客户端稍后重试即可。"""

    def __init__(self, key: str, retry_after_ms: int = 1000):
        super().__init__(f"Job is busy: {key}")
        self.key = key
        self.retry_after_ms = retry_after_ms


class ReportRunFailedError(OrchestrationError):
    """任务已处于 error 状态；重复 continue 直接抛出当时记录的错误。"""

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id

"""账户计划助手的业务异常。

Provider 抛出 NetworkError / ApiError / RateLimitError，引擎把它们统一转换为兜底回复；
ValidationError 覆盖工具参数与输入校验，工具执行器会把它转成错误结果回传给模型；
控制器与导出层直接抛出 BusinessError（TURN_IN_FLIGHT、PLAN_NOT_FOUND、EXPORT_WRITE_ERROR 等）。
"""


class BusinessError(Exception):
    """所有业务异常的基类。

    Attributes:
        code: 错误码，例如 "TURN_IN_FLIGHT"、"EXPORT_WRITE_ERROR"。
        message: 可直接展示或回传给模型的说明文字。
        http_status: 经 api 层对外暴露时使用的状态码，默认 400。
        extra: 附加上下文，例如 provider、trace_id。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class NetworkError(BusinessError):
    """与 Gemini 服务的连接失败或超时（NETWORK_ERROR）。"""


class ApiError(BusinessError):
    """Gemini 返回错误状态码（API_ERROR），或响应体不是预期结构（MALFORMED_RESPONSE）。"""


class RateLimitError(BusinessError):
    """Gemini 返回 429（RATE_LIMIT）。"""


class ValidationError(BusinessError):
    """输入不合法：工具参数（INVALID_TOOL_ARGS）、空消息（EMPTY_MESSAGE）、缺少密钥（MISSING_API_KEY）等。"""

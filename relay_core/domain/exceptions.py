"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 Provider 边界或服务层做统一捕获与用户提示。

注意：这些异常只在模块内部流动。Provider 适配器会把它们转换成
`GenerationResult(success=False)`，Broker 会把投递失败转换成订阅移除，
调用方不会直接看到它们。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、model 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """凭据缺失、自定义 base_url 非法等配置问题，适配器无法构造。"""


class UnsupportedModelError(BusinessError):
    """请求的模型不在 Provider 的静态模型表中。"""


class UpstreamError(BusinessError):
    """上游返回非 2xx 或无法解析的 JSON。"""


class NetworkError(UpstreamError):
    """网络层错误，例如连接失败、超时等。"""


class ExtractionError(BusinessError):
    """自定义响应结构与配置的字段路径不符。"""


class DeliveryError(BusinessError):
    """订阅者的投递通道拒绝了事件（已关闭、队列已满或写入异常）。"""

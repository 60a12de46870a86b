"""
错误类型定义模块 - relaybot 中所有"可恢复的单命令错误"。

错误分类：
- InputError：命令参数无效（如空消息、未知人格），在访问会话状态之前拒绝
- UpstreamError：补全服务调用失败（超时、限流、响应格式错误、传输错误）
- SessionBusyError：在限定时间内无法获得会话的独占访问权

这些错误都不会导致进程退出：CommandDispatcher 会把它们转换为
只对发起者可见的失败回复，用户下一条命令即可恢复。

【Java 开发者类比】
- RelayError 类似于自定义的 checked exception 基类
- category 字段类似于错误码枚举，便于日志和回复中区分错误类别
"""

from enum import Enum


class UpstreamKind(str, Enum):
    """补全服务失败的具体类别（会出现在用户可见的失败提示中）。"""
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"
    TRANSPORT = "transport"


class RelayError(Exception):
    """所有单命令错误的基类。"""

    category: str = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(RelayError):
    """命令文本为空或参数无效。"""

    category = "input"


class UpstreamError(RelayError):
    """
    补全服务调用失败。

    会话状态层面所有 kind 一视同仁（都视为"补全失败"），
    但 kind 会写进失败提示，方便用户和运维排查。

    属性:
        kind: 失败类别（UpstreamKind）
        message: 原始错误描述
    """

    category = "upstream"

    def __init__(self, kind: UpstreamKind, message: str):
        super().__init__(message)
        self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class SessionBusyError(RelayError):
    """在 lock_timeout 内未能获得会话锁（通常是同一会话的上一条 chat 仍在进行）。"""

    category = "busy"

    def __init__(self, key: object, timeout: float | None):
        super().__init__(f"Session {key} is busy (waited {timeout}s)")
        self.key = key
        self.timeout = timeout

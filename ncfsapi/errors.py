"""
驱动异常。

三类终止性错误：
- TransportError：请求未得到可用响应（连接失败、上下文已取消）或远端返回非 2xx；
- DecodeError：远端返回了内容，但无法按预期结构解析；
- Unimplemented：接口存在但没有对应的线上映射，不会发出请求。
"""

from __future__ import annotations


class StorageError(Exception):
    """所有驱动异常的基类。"""

    def __init__(self, message: str | None = None):
        if not message:
            message = "Unspecified problem accessing the storage service"
        super().__init__(message)


class ConfigurationError(StorageError):
    """配置缺失或类型错误。"""


class TransportError(StorageError):
    """
    访问远端接口时失败。

    :param message: 错误说明
    :param ep: 访问的接口地址
    :param code: HTTP 状态码；未收到响应时为 0
    :param resptext: 远端返回的正文（若有）
    """

    def __init__(
        self,
        message: str | None = None,
        ep: str | None = None,
        code: int = 0,
        resptext: str | None = None,
    ):
        if not message:
            message = "Error accessing storage service"
            if ep:
                message += f" at {ep}"
            if code:
                message += f" ({code})"
            if resptext:
                message += f": {resptext}"
        super().__init__(message)
        self.ep = ep
        self.code = code or 0
        self.response = resptext


class CommError(TransportError):
    """未收到远端响应：连接被拒、DNS 失败、超时或调用方已取消。"""

    def __init__(self, message: str | None = None, ep: str | None = None):
        if not message:
            message = "Storage service communication failure"
            if ep:
                message += f" while accessing {ep}"
        super().__init__(message, ep)


class RemoteStatusError(TransportError):
    """远端返回非 2xx；响应正文保存在 response 中作为详情。"""

    def __init__(self, code: int, ep: str | None = None, resptext: str | None = None):
        message = f"Storage service returned {code}"
        if ep:
            message += f" for {ep}"
        if resptext:
            message += f": {resptext}"
        super().__init__(message, ep, code, resptext)


class DecodeError(StorageError):
    """
    响应正文无法解析为期望的结构（非法 JSON、字段类型不符、非 UTF-8 等）。

    :param message: 错误说明
    :param ep: 访问的接口地址
    :param resptext: 无法处理的正文
    """

    def __init__(self, message: str | None = None, ep: str | None = None, resptext: str | None = None):
        if not message:
            message = "Unexpected content returned from storage service"
        if ep:
            message += f" while accessing {ep}"
        super().__init__(message)
        self.ep = ep
        self.response = resptext


class Unimplemented(StorageError, NotImplementedError):
    """该操作（或该形式的引用）没有线上映射。"""

    def __init__(self, operation: str, message: str | None = None):
        super().__init__(message or f"{operation}: method not implemented")
        self.operation = operation

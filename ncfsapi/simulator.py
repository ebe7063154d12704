"""
模拟服务端：按调用签名查表应答的有限状态机，用于在没有真实远端时验证驱动。

签名 = (方法, 请求路径, 正文)。查表顺序：
1. 不带状态的签名；
2. 签名 + 当前状态；
3. 都没有：记录告警，返回 200 和 "response not defined! <签名>"，状态置为 ERROR
   （strict=True 时改为抛出 UnmatchedCall）。
命中的转移决定响应与下一状态；转移未给出下一状态时同样进入 ERROR。

正文按结构比较：JSON 解析后比较（字段顺序、空白不影响匹配），非 JSON 正文按原文比较。
调用日志 calls 则记录线上原文，便于断言编码逐字节一致。

状态与调用日志归属于单个 Simulator 实例，实例本身不是线程安全的；
并行测试请各自创建实例。
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Iterable
from enum import Enum
from typing import Any

import httpx


class ServerState(str, Enum):
    EMPTY = "EMPTY"
    HOME = "HOME"
    SUBDIR = "SUBDIR"
    NEWDIR = "NEWDIR"
    SUBDIR_NEWDIR = "SUBDIR-NEWDIR"
    MOVED = "MOVED"
    FILE_RESTORED = "FILE-RESTORED"
    GRANT_ADDED = "GRANT-ADDED"
    GRANT_UPDATED = "GRANT-UPDATED"
    RECYCLE = "RECYCLE"
    REFERENCE = "REFERENCE"
    METADATA = "METADATA"
    ERROR = "ERROR"


@dataclasses.dataclass(frozen=True)
class Transition:
    """一次应答：状态码、正文、下一状态（None 表示进入 ERROR）。"""

    code: int
    body: str = ""
    next_state: ServerState | None = None


def _freeze(value: Any) -> Any:
    # bool 与数字分开，避免 true == 1
    if isinstance(value, dict):
        return ("{}", tuple(sorted((k, _freeze(v)) for k, v in value.items())))
    if isinstance(value, list):
        return ("[]", tuple(_freeze(v) for v in value))
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, (int, float)):
        return ("num", value)
    if value is None:
        return ("null",)
    return ("str", value)


def body_key(body: bytes) -> Any:
    """正文的结构化匹配键：空正文、JSON、原始文本、二进制互不相等。"""
    if not body:
        return ("empty",)
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        return ("bytes", body)
    try:
        return ("json", _freeze(json.loads(text)))
    except ValueError:
        return ("raw", text)


@dataclasses.dataclass(frozen=True)
class CallSignature:
    method: str
    path: str
    body: bytes = b""

    @classmethod
    def parse(cls, text: str) -> CallSignature:
        """解析 "<METHOD> <path> <body>" 形式的签名文本；正文可为空。"""
        parts = text.split(" ", 2)
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise ValueError(f"malformed call signature: {text!r}")
        body = parts[2] if len(parts) == 3 else ""
        return cls(parts[0], parts[1], body.encode("utf-8"))

    @property
    def text(self) -> str:
        return f"{self.method} {self.path} {self.body.decode('utf-8', 'replace')}"

    def key(self) -> tuple[str, str, Any]:
        return (self.method.upper(), self.path, body_key(self.body))

    def __str__(self) -> str:
        return self.text


class UnmatchedCall(LookupError):
    """strict 模式下收到表中没有的请求。"""

    def __init__(self, signature: CallSignature, state: ServerState):
        super().__init__(f"response not defined! {signature.text} [{state.value}]")
        self.signature = signature
        self.state = state


class TransitionTable:
    """
    (签名[, 状态]) → Transition 的映射；同一键只允许出现一次。

    :param rows: (签名文本, 限定状态或 None, Transition) 序列
    """

    def __init__(self, rows: Iterable[tuple[str, ServerState | None, Transition]] = ()):
        self._rows: dict[tuple[Any, ServerState | None], Transition] = {}
        for signature, state, transition in rows:
            self.add(signature, transition, state)

    def add(self, signature: str | CallSignature, transition: Transition, state: ServerState | None = None) -> None:
        sig = CallSignature.parse(signature) if isinstance(signature, str) else signature
        key = (sig.key(), state)
        if key in self._rows:
            where = f" in state {state.value}" if state else ""
            raise ValueError(f"duplicate transition for {sig.text.strip()}{where}")
        self._rows[key] = transition

    def lookup(self, sig: CallSignature, state: ServerState | None = None) -> Transition | None:
        return self._rows.get((sig.key(), state))

    def __len__(self) -> int:
        return len(self._rows)


class Simulator:
    """
    远端 sciencemesh 接口的替身。

    :param table: 转移表；不提供时使用 ncfsapi.responses 中的默认表
    :param initial_state: 初始状态
    :param strict: True 时未建模的请求抛出 UnmatchedCall
    :param log: 日志对象
    """

    def __init__(
        self,
        table: TransitionTable | None = None,
        *,
        initial_state: ServerState = ServerState.EMPTY,
        strict: bool = False,
        log: logging.Logger | None = None,
    ):
        if table is None:
            from ncfsapi.responses import default_table

            table = default_table()
        self.table = table
        self.initial_state = initial_state
        self.state = initial_state
        self.strict = strict
        self.calls: list[str] = []
        self.log = log or logging.getLogger("ncfsapi.simulator")

    def reset(self) -> None:
        """恢复初始状态并清空调用日志。"""
        self.state = self.initial_state
        self.calls = []

    def dispatch(self, method: str, path: str, body: bytes = b"") -> tuple[int, bytes]:
        sig = CallSignature(method, path, body)
        self.calls.append(sig.text)
        self.log.debug("dispatch %s [%s]", sig.text, self.state.value)

        transition = self.table.lookup(sig)
        if transition is None:
            transition = self.table.lookup(sig, self.state)
        if transition is None:
            self.log.warning("response not defined! %s [%s]", sig.text, self.state.value)
            if self.strict:
                err = UnmatchedCall(sig, self.state)
                self.state = ServerState.ERROR
                raise err
            self.state = ServerState.ERROR
            return 200, f"response not defined! {sig.text}".encode("utf-8")

        self.state = transition.next_state or ServerState.ERROR
        return transition.code, transition.body.encode("utf-8")

    def handle(self, request: httpx.Request) -> httpx.Response:
        """httpx.MockTransport 的处理函数。"""
        path = request.url.raw_path.decode("ascii")
        code, body = self.dispatch(request.method, path, request.content)
        return httpx.Response(code, content=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def http_client(self) -> httpx.Client:
        """挂接本模拟器的 httpx.Client，可直接交给 StorageDriver.set_http_client()。"""
        return httpx.Client(transport=self.transport())

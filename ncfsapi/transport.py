"""
传输层：每次调用只发一个 HTTP 请求，不重试、不设默认超时。

底层使用 httpx.Client；测试时通过 set_client() 注入挂着模拟服务端的
httpx.Client(transport=httpx.MockTransport(...))，生产配置则直连真实地址。
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Iterable, Iterator
from typing import Any, BinaryIO
from urllib.parse import quote

import httpx

from ncfsapi.errors import CommError, RemoteStatusError

TOKEN_HEADER = "x-access-token"


def _path_for_url(path: str) -> str:
    """将路径按段做 UTF-8 百分号编码，供 URL 使用；段内的 / 也会被编码。"""
    segments = (path.strip("/").split("/") if path.strip("/") else [])
    return "/" + "/".join(quote(seg, safe="") for seg in segments) if segments else "/"


def escape_segment(segment: str) -> str:
    """单个路径段编码（如含 / 的版本 key："some/revision" -> "some%2Frevision"）。"""
    return quote(segment, safe="")


@dataclasses.dataclass
class RequestContext:
    """
    调用上下文：已认证的调用方身份，加上取消与超时控制。

    cancel() 可在其他线程调用：除标记取消外，还会关闭本上下文上尚未读完的响应，
    使阻塞中的读取立即返回。

    :param username: 调用方用户名，仅用于拼接 ~<username> 路径段
    :param token: 访问令牌；提供时随请求头 x-access-token 发送
    :param timeout: 单次请求超时秒数；None 表示不限
    """

    username: str
    token: str | None = None
    timeout: float | None = None
    _cancel: threading.Event = dataclasses.field(default_factory=threading.Event, repr=False, compare=False)
    _inflight: list[httpx.Response] = dataclasses.field(default_factory=list, repr=False, compare=False)
    _lock: threading.Lock = dataclasses.field(default_factory=threading.Lock, repr=False, compare=False)

    def cancel(self) -> None:
        self._cancel.set()
        with self._lock:
            inflight, self._inflight = self._inflight, []
        for response in inflight:
            response.close()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _track(self, response: httpx.Response) -> None:
        with self._lock:
            if not self.cancelled:
                self._inflight.append(response)
                return
        response.close()

    def _untrack(self, response: httpx.Response) -> None:
        with self._lock:
            if response in self._inflight:
                self._inflight.remove(response)


class ResponseStream:
    """
    下载结果：按块读取响应正文，不做解码。

    可迭代（逐块）、可 read() 一次读完；用完需 close()，或用 with 语句。
    每读一块前检查上下文是否已取消。
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(self, response: httpx.Response, ctx: RequestContext, ep: str):
        self._response = response
        self._ctx = ctx
        self.ep = ep

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def __iter__(self) -> Iterator[bytes]:
        try:
            for chunk in self._response.iter_bytes(self.CHUNK_SIZE):
                if self._ctx.cancelled:
                    raise CommError("context canceled", self.ep)
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as ex:
            if self._ctx.cancelled:
                raise CommError("context canceled", self.ep) from ex
            raise CommError(str(ex), self.ep) from ex
        finally:
            self.close()

    def read(self) -> bytes:
        return b"".join(self)

    def close(self) -> None:
        self._ctx._untrack(self._response)
        self._response.close()

    def __enter__(self) -> ResponseStream:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class Transport:
    """
    send(method, path, body) -> (status_code, response_bytes)。

    :param end_point: 远端接口根地址，如 http://nextcloud/apps/sciencemesh/
    :param client: 可选，预先构造好的 httpx.Client（测试用）
    :param log: 日志对象；不提供时使用名为 "ncfsapi.transport" 的 logger
    """

    UPLOAD_CHUNK_SIZE = 1024 * 1024  # 1 MiB，大文件流式上传块大小，避免整文件读入内存

    def __init__(self, end_point: str, *, client: httpx.Client | None = None, log: logging.Logger | None = None):
        self.end_point = end_point if end_point.endswith("/") else end_point + "/"
        self._client = client
        self._closed = False
        self.log = log or logging.getLogger("ncfsapi.transport")

    def _get_client(self) -> httpx.Client:
        # close() 之后不再新建客户端，避免注入的模拟客户端被悄悄换成真实网络
        if self._closed or (self._client is not None and self._client.is_closed):
            raise CommError("transport is closed", self.end_point)
        if self._client is None:
            # 本层不设超时，由调用上下文决定
            self._client = httpx.Client(timeout=None, follow_redirects=True)
        return self._client

    def set_client(self, client: httpx.Client) -> None:
        self._client = client
        self._closed = False

    def close(self) -> None:
        """关闭底层 HTTP 客户端；之后的调用抛出 CommError，直到 set_client() 换上新客户端。"""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
        self._closed = True

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def url(self, path: str) -> str:
        return self.end_point + path.lstrip("/")

    def _build(
        self,
        ctx: RequestContext,
        method: str,
        url: str,
        content: bytes | Iterable[bytes] | None,
        headers: dict[str, str],
    ) -> httpx.Request:
        if ctx.cancelled:
            raise CommError("context canceled", url)
        if ctx.token:
            headers[TOKEN_HEADER] = ctx.token
        timeout: Any = ctx.timeout if ctx.timeout is not None else httpx.USE_CLIENT_DEFAULT
        try:
            return self._get_client().build_request(method, url, content=content, headers=headers, timeout=timeout)
        except httpx.InvalidURL as ex:
            raise CommError(f"invalid URL: {ex}", url) from ex

    def _dispatch(self, ctx: RequestContext, request: httpx.Request, url: str) -> httpx.Response:
        """发出请求并取得响应头；正文未读，响应已登记到 ctx 以便 cancel() 关闭。"""
        self.log.debug("%s %s", request.method, url)
        try:
            response = self._get_client().send(request, stream=True)
        except httpx.TimeoutException as ex:
            raise CommError(f"request timed out: {ex}", url) from ex
        except httpx.HTTPError as ex:
            if ctx.cancelled:
                raise CommError("context canceled", url) from ex
            raise CommError(str(ex), url) from ex
        ctx._track(response)
        if ctx.cancelled:
            self._release(ctx, response)
            raise CommError("context canceled", url)
        return response

    @staticmethod
    def _release(ctx: RequestContext, response: httpx.Response) -> None:
        ctx._untrack(response)
        response.close()

    def _read(self, ctx: RequestContext, response: httpx.Response, url: str) -> bytes:
        """读完正文并关闭响应；读取期间被取消时抛出 CommError。"""
        try:
            data = response.read()
        except (httpx.HTTPError, httpx.StreamError) as ex:
            if ctx.cancelled:
                raise CommError("context canceled", url) from ex
            raise CommError(str(ex), url) from ex
        finally:
            self._release(ctx, response)
        if ctx.cancelled:
            raise CommError("context canceled", url)
        return data

    def send(
        self,
        ctx: RequestContext,
        method: str,
        path: str,
        body: bytes | Iterable[bytes] = b"",
        *,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, bytes]:
        """
        发送一个请求并读完响应。

        :return: (状态码, 响应正文)
        :raises CommError: 未收到响应（含上下文已取消）
        :raises RemoteStatusError: 非 2xx 响应
        """
        url = self.url(path)
        request = self._build(ctx, method, url, body, dict(headers or {}))
        response = self._dispatch(ctx, request, url)
        data = self._read(ctx, response, url)
        if not response.is_success:
            raise RemoteStatusError(response.status_code, url, response.text)
        return response.status_code, data

    def open_stream(self, ctx: RequestContext, method: str, path: str) -> ResponseStream:
        """发送请求并返回未读的响应流（下载用）；流在 close() 前一直登记在 ctx 上。"""
        url = self.url(path)
        request = self._build(ctx, method, url, None, {})
        response = self._dispatch(ctx, request, url)
        if not response.is_success:
            try:
                self._read(ctx, response, url)
                text: str | None = response.text
            except CommError:
                if ctx.cancelled:
                    raise
                text = None
            raise RemoteStatusError(response.status_code, url, text)
        return ResponseStream(response, ctx, url)

    def upload_body(
        self, ctx: RequestContext, content: BinaryIO | bytes | Iterable[bytes]
    ) -> tuple[bytes | Iterator[bytes], dict[str, str]]:
        """生成 PUT body 与 headers；可 seek 的文件对象流式发送（迭代器 + Content-Length），否则整块读入。"""
        headers = {"Content-Type": "application/octet-stream"}
        if isinstance(content, (bytes, bytearray)):
            return bytes(content), headers
        if not hasattr(content, "read"):
            return self._guarded(ctx, iter(content)), headers
        try:
            content.seek(0, 2)
            size = content.tell()
            content.seek(0)
        except (AttributeError, OSError):
            return content.read(), headers

        def stream_chunks() -> Iterator[bytes]:
            while True:
                chunk = content.read(self.UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

        headers["Content-Length"] = str(size)
        return self._guarded(ctx, stream_chunks()), headers

    @staticmethod
    def _guarded(ctx: RequestContext, chunks: Iterator[bytes]) -> Iterator[bytes]:
        for chunk in chunks:
            if ctx.cancelled:
                raise CommError("context canceled")
            yield chunk

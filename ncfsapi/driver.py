"""
存储驱动：把文件系统能力调用逐一翻译为对远端 sciencemesh 接口的单个请求。

请求路径约定：<end_point>~<username>/api/<操作名>[/<额外路径段>]
- 结构化调用一律 POST，正文为 JSON（无参数时为空正文）；
- Upload 为 PUT，正文即文件内容；Download / DownloadRevision 为 GET，返回原始字节流。

驱动本身除配置的地址外不持有可变状态，可被多个调用方共享。
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import Any, BinaryIO

import httpx

from ncfsapi import codec
from ncfsapi.errors import ConfigurationError, Unimplemented
from ncfsapi.models import (
    ArbitraryMetadata,
    CreateStorageSpaceRequest,
    FileVersion,
    Grant,
    Grantee,
    Quota,
    RecycleItem,
    Reference,
    ResourceId,
    ResourceInfo,
    StorageSpace,
    StorageSpaceFilter,
)
from ncfsapi.simulator import Simulator
from ncfsapi.transport import RequestContext, ResponseStream, Transport, _path_for_url, escape_segment


@dataclasses.dataclass(frozen=True)
class DriverConfig:
    """
    :param end_point: 远端接口根地址，如 "http://nextcloud/apps/sciencemesh/"
    :param mock_http: True 时不连真实网络，改用内置模拟服务端
    """

    end_point: str
    mock_http: bool = False


def parse_config(m: Mapping[str, Any]) -> DriverConfig:
    """从普通 dict 解码配置；缺少 end_point 或类型不符时抛出 ConfigurationError。"""
    end_point = m.get("end_point")
    if not end_point:
        raise ConfigurationError("missing required config parameter: end_point")
    if not isinstance(end_point, str):
        raise ConfigurationError(f"end_point: expected string, got {type(end_point).__name__}")
    mock_http = m.get("mock_http", False)
    if not isinstance(mock_http, bool):
        raise ConfigurationError(f"mock_http: expected boolean, got {type(mock_http).__name__}")
    return DriverConfig(end_point=end_point, mock_http=mock_http)


def new(m: Mapping[str, Any], log: logging.Logger | None = None) -> StorageDriver:
    """按配置 dict 创建驱动。"""
    return StorageDriver(parse_config(m), log=log)


class StorageDriver:
    """
    远端存储驱动。

    每个方法的第一个参数都是 RequestContext；失败时抛出 TransportError / DecodeError /
    Unimplemented 之一，不重试、不做补偿。
    """

    def __init__(
        self,
        config: DriverConfig,
        *,
        client: httpx.Client | None = None,
        log: logging.Logger | None = None,
    ):
        """
        :param config: 驱动配置
        :param client: 可选，自定义 httpx.Client
        :param log: 日志对象；不提供时使用名为 "ncfsapi" 的 logger
        """
        self.config = config
        self.log = log or logging.getLogger("ncfsapi")
        self.simulator: Simulator | None = None
        if client is None and config.mock_http:
            self.simulator = Simulator()
            client = self.simulator.http_client()
        self._transport = Transport(config.end_point, client=client, log=self.log)

    def set_http_client(self, client: httpx.Client) -> None:
        """替换底层 HTTP 客户端（测试时挂接模拟服务端）。"""
        self._transport.set_client(client)

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> StorageDriver:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------- 请求辅助 -------------------------

    def _op_path(self, ctx: RequestContext, op: str) -> str:
        return f"~{escape_segment(ctx.username)}/api/{op}"

    def _target_path(self, ref: Reference, op: str) -> str:
        if not ref.path:
            # 字节流接口只能按路径寻址，没有按 resource_id 的线上映射
            raise Unimplemented(op, f"{op}: references without a path have no wire mapping")
        return _path_for_url(ref.path)

    def _do(self, ctx: RequestContext, op: str, body: bytes = b"") -> bytes:
        headers = {"Content-Type": codec.JSON_CONTENT_TYPE} if body else {}
        self.log.debug("%s for %s: %s", op, ctx.username, body.decode("utf-8", "replace"))
        _, data = self._transport.send(ctx, "POST", self._op_path(ctx, op), body, headers=headers)
        return data

    def _call(self, ctx: RequestContext, op: str, body: bytes, target: Any, *, many: bool = False) -> Any:
        data = self._do(ctx, op, body)
        return codec.decode(data, target, many=many, ep=self._transport.url(self._op_path(ctx, op)))

    # ------------------------- 家目录 -------------------------

    def get_home(self, ctx: RequestContext) -> str:
        """返回远端对家目录的描述（原样文本）。"""
        return codec.decode_text(self._do(ctx, "GetHome"), ep=self._transport.url(self._op_path(ctx, "GetHome")))

    def create_home(self, ctx: RequestContext) -> None:
        self._do(ctx, "CreateHome")

    # ------------------------- 目录与文件 -------------------------

    def create_dir(self, ctx: RequestContext, ref: Reference) -> None:
        self._do(ctx, "CreateDir", codec.encode(ref))

    def touch_file(self, ctx: RequestContext, ref: Reference) -> None:
        raise Unimplemented("TouchFile")

    def delete(self, ctx: RequestContext, ref: Reference) -> None:
        """删除条目；远端将其移入回收站。"""
        self._do(ctx, "Delete", codec.encode(ref))

    def move(self, ctx: RequestContext, old_ref: Reference, new_ref: Reference) -> None:
        self._do(ctx, "Move", codec.encode_move(old_ref, new_ref))

    def get_md(self, ctx: RequestContext, ref: Reference, md_keys: list[str] | None = None) -> ResourceInfo:
        """
        读取条目元数据。

        :param ref: 目标引用
        :param md_keys: 需要的元数据键；None 表示全部
        """
        return self._call(ctx, "GetMD", codec.encode_md_request(ref, md_keys), ResourceInfo)

    def list_folder(self, ctx: RequestContext, ref: Reference, md_keys: list[str] | None = None) -> list[ResourceInfo]:
        return self._call(ctx, "ListFolder", codec.encode_md_request(ref, md_keys), ResourceInfo, many=True)

    # ------------------------- 上传与下载 -------------------------

    def initiate_upload(
        self,
        ctx: RequestContext,
        ref: Reference,
        upload_length: int,
        metadata: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """登记一次上传，返回远端给出的上传协议 → 地址映射。"""
        body = codec.encode_initiate_upload(ref, upload_length, metadata)
        return self._call(ctx, "InitiateUpload", body, dict)

    def upload(self, ctx: RequestContext, ref: Reference, content: BinaryIO | bytes | Iterable[bytes]) -> None:
        """
        上传文件内容：PUT <api>/Upload/<path>，正文即文件内容，不经过 JSON 编码。

        :param content: bytes、文件对象或字节块迭代器；可 seek 的文件对象流式发送
        """
        path = self._op_path(ctx, "Upload") + self._target_path(ref, "Upload")
        body, headers = self._transport.upload_body(ctx, content)
        self.log.debug("Upload for %s: %s", ctx.username, ref.path)
        self._transport.send(ctx, "PUT", path, body, headers=headers)

    def download(self, ctx: RequestContext, ref: Reference) -> ResponseStream:
        """GET <api>/Download/<path>，返回原始字节流（调用方负责 close）。"""
        path = self._op_path(ctx, "Download") + self._target_path(ref, "Download")
        return self._transport.open_stream(ctx, "GET", path)

    # ------------------------- 历史版本 -------------------------

    def list_revisions(self, ctx: RequestContext, ref: Reference) -> list[FileVersion]:
        return self._call(ctx, "ListRevisions", codec.encode(ref), FileVersion, many=True)

    def download_revision(self, ctx: RequestContext, ref: Reference, key: str) -> ResponseStream:
        """GET <api>/DownloadRevision/<编码后的 key>/<path>；key 中的 / 会被编码为 %2F。"""
        path = (
            self._op_path(ctx, "DownloadRevision")
            + "/"
            + escape_segment(key)
            + self._target_path(ref, "DownloadRevision")
        )
        return self._transport.open_stream(ctx, "GET", path)

    def restore_revision(self, ctx: RequestContext, ref: Reference, key: str) -> None:
        self._do(ctx, "RestoreRevision", codec.encode_restore_revision(ref, key))

    # ------------------------- 回收站 -------------------------

    def list_recycle(self, ctx: RequestContext, key: str = "", path: str = "") -> list[RecycleItem]:
        """
        列出回收站条目。

        :param key: 只列出该 key 下的条目；空串表示全部
        :param path: 相对 key 的子路径
        """
        return self._call(ctx, "ListRecycle", codec.encode_list_recycle(key, path), RecycleItem, many=True)

    def restore_recycle_item(
        self, ctx: RequestContext, key: str, path: str, restore_ref: Reference | None = None
    ) -> None:
        """恢复回收站条目；restore_ref 为 None 时恢复到原位置。"""
        self._do(ctx, "RestoreRecycleItem", codec.encode_restore_recycle_item(key, path, restore_ref))

    def purge_recycle_item(self, ctx: RequestContext, key: str, path: str) -> None:
        self._do(ctx, "PurgeRecycleItem", codec.encode_purge_recycle_item(key, path))

    def empty_recycle(self, ctx: RequestContext) -> None:
        self._do(ctx, "EmptyRecycle")

    # ------------------------- 标识 -------------------------

    def get_path_by_id(self, ctx: RequestContext, resource_id: ResourceId) -> str:
        return codec.decode_text(
            self._do(ctx, "GetPathByID", codec.encode(resource_id)),
            ep=self._transport.url(self._op_path(ctx, "GetPathByID")),
        )

    # ------------------------- 授权 -------------------------

    def add_grant(self, ctx: RequestContext, ref: Reference, grant: Grant) -> None:
        self._do(ctx, "AddGrant", codec.encode_grant_request(ref, grant))

    def deny_grant(self, ctx: RequestContext, ref: Reference, grantee: Grantee) -> None:
        self._do(ctx, "DenyGrant", codec.encode_deny_grant(ref, grantee))

    def remove_grant(self, ctx: RequestContext, ref: Reference, grant: Grant) -> None:
        self._do(ctx, "RemoveGrant", codec.encode_grant_request(ref, grant))

    def update_grant(self, ctx: RequestContext, ref: Reference, grant: Grant) -> None:
        """整体替换该被授权者在 ref 上的授权，不与旧权限合并。"""
        self._do(ctx, "UpdateGrant", codec.encode_grant_request(ref, grant))

    def list_grants(self, ctx: RequestContext, ref: Reference) -> list[Grant]:
        return self._call(ctx, "ListGrants", codec.encode(ref), Grant, many=True)

    # ------------------------- 配额、引用、元数据 -------------------------

    def get_quota(self, ctx: RequestContext) -> Quota:
        return self._call(ctx, "GetQuota", b"", Quota)

    def create_reference(self, ctx: RequestContext, path: str, target_uri: str) -> None:
        """在 path 处创建指向 target_uri 的引用（如共享挂载点）。"""
        self._do(ctx, "CreateReference", codec.encode_create_reference(path, str(target_uri)))

    def shutdown(self, ctx: RequestContext) -> None:
        self._do(ctx, "Shutdown")

    def set_arbitrary_metadata(self, ctx: RequestContext, ref: Reference, md: ArbitraryMetadata) -> None:
        self._do(ctx, "SetArbitraryMetadata", codec.encode_set_metadata(ref, md))

    def unset_arbitrary_metadata(self, ctx: RequestContext, ref: Reference, keys: list[str]) -> None:
        self._do(ctx, "UnsetArbitraryMetadata", codec.encode_unset_metadata(ref, keys))

    # ------------------------- 存储空间 -------------------------

    def list_storage_spaces(self, ctx: RequestContext, filters: list[StorageSpaceFilter]) -> list[StorageSpace]:
        return self._call(ctx, "ListStorageSpaces", codec.encode_space_filters(filters), StorageSpace, many=True)

    def create_storage_space(self, ctx: RequestContext, req: CreateStorageSpaceRequest) -> StorageSpace:
        return self._call(ctx, "CreateStorageSpace", codec.encode_create_space(req), StorageSpace)

    def update_storage_space(self, ctx: RequestContext, *args: Any) -> None:
        raise Unimplemented("UpdateStorageSpace")

    # ------------------------- 锁（远端无对应接口） -------------------------

    def set_lock(self, ctx: RequestContext, ref: Reference, lock: Any) -> None:
        raise Unimplemented("SetLock")

    def get_lock(self, ctx: RequestContext, ref: Reference) -> Any:
        raise Unimplemented("GetLock")

    def refresh_lock(self, ctx: RequestContext, ref: Reference, lock: Any) -> None:
        raise Unimplemented("RefreshLock")

    def unlock(self, ctx: RequestContext, ref: Reference) -> None:
        raise Unimplemented("Unlock")

"""
驱动逐操作测试：对模拟服务端（用户 tester）调用每个操作，
断言实际发出的请求（调用日志原文）与解码后的结果。
"""

from __future__ import annotations

import io

import pytest

from ncfsapi import codec
from ncfsapi.driver import StorageDriver
from ncfsapi.errors import StorageError, Unimplemented
from ncfsapi.models import (
    PERMISSION_FIELDS,
    ArbitraryMetadata,
    CreateStorageSpaceRequest,
    FileVersion,
    Grant,
    Grantee,
    GranteeType,
    Opaque,
    Quota,
    RecycleItem,
    Reference,
    ResourceChecksum,
    ResourceId,
    ResourceInfo,
    ResourcePermissions,
    ResourceType,
    SpaceQuota,
    SpaceType,
    StorageSpace,
    StorageSpaceFilter,
    Timestamp,
    UserId,
    UserType,
)
from ncfsapi.simulator import ServerState, Simulator
from ncfsapi.transport import RequestContext

from tests.config import (
    FILE_REF,
    FILE_REF_JSON,
    GRANT,
    GRANTEE_USER,
    MD_KEYS,
    REF,
    REF_JSON,
    TESTER_API,
)

ALL_PERMS_JSON = "{" + ",".join(f'"{name}":true' for name in PERMISSION_FIELDS) + "}"
GRANTEE_JSON = '{"UserId":{"idp":"0.0.0.0:19000","opaque_id":"f7fbf8c8-139b-4376-b307-cf0a8c2d0d9c","type":1}}'
GRANT_JSON = '{"grantee":{"Id":' + GRANTEE_JSON + '},"permissions":' + ALL_PERMS_JSON + "}"

SPACE_OWNER = UserId(idp="some-idp", opaque_id="some-opaque-user-id", type=UserType.PRIMARY)
SPACE_OPAQUE = Opaque(entries={"foo": b"sama", "bar": b"sama"})
EXPECTED_SPACE = StorageSpace(
    id="some-opaque-storage-space-id",
    owner=SPACE_OWNER,
    root=ResourceId(storage_id="some-storage-id", opaque_id="some-opaque-root-id"),
    name="My Storage Space",
    quota=SpaceQuota(quota_max_bytes=456, quota_max_files=123),
    space_type="home",
    mtime=Timestamp(seconds=1234567890),
    opaque=SPACE_OPAQUE,
)


# ------------------------- 家目录 -------------------------


def test_get_home(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """GetHome 空正文 POST，结果为原样文本。"""
    assert driver.get_home(ctx) == "yes we are"
    assert simulator.calls == [f"POST {TESTER_API}GetHome "]
    assert simulator.state is ServerState.HOME


def test_create_home(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.create_home(ctx)
    assert simulator.calls == [f"POST {TESTER_API}CreateHome "]


# ------------------------- 目录与文件 -------------------------


def test_create_dir(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """CreateDir 只发一个 POST，正文就是 Reference 本身。"""
    driver.create_dir(ctx, REF)
    assert simulator.calls == [f"POST {TESTER_API}CreateDir {REF_JSON}"]
    assert simulator.state is ServerState.EMPTY


def test_delete(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.delete(ctx, REF)
    assert simulator.calls == [f"POST {TESTER_API}Delete {REF_JSON}"]


def test_move(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """Move 正文为 from/to 两个命名字段。"""
    old = Reference(resource_id=ResourceId("storage-id-1", "opaque-id-1"), path="/some/old/path")
    new = Reference(resource_id=ResourceId("storage-id-2", "opaque-id-2"), path="/some/new/path")
    driver.move(ctx, old, new)
    assert simulator.calls == [
        f"POST {TESTER_API}Move "
        '{"from":{"resource_id":{"storage_id":"storage-id-1","opaque_id":"opaque-id-1"},"path":"/some/old/path"},'
        '"to":{"resource_id":{"storage_id":"storage-id-2","opaque_id":"opaque-id-2"},"path":"/some/new/path"}}'
    ]


def test_touch_file_is_unimplemented(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    with pytest.raises(Unimplemented, match="TouchFile: method not implemented"):
        driver.touch_file(ctx, REF)
    assert simulator.calls == []


def test_get_md(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """GetMD 解码 etag、MIME 类型、大小与自定义元数据。"""
    info = driver.get_md(ctx, REF, MD_KEYS)
    assert simulator.calls == [f'POST {TESTER_API}GetMD {{"ref":{REF_JSON},"mdKeys":["val1","val2","val3"]}}']
    assert info == ResourceInfo(
        type=ResourceType.FILE,
        id=ResourceId(opaque_id="fileid-/some/path"),
        checksum=ResourceChecksum(),
        etag="in-json-etag",
        mime_type="in-json-mimetype",
        mtime=Timestamp(seconds=1234567890),
        path="/some/path",
        permission_set=ResourcePermissions.none(),
        size=12345,
        arbitrary_metadata=ArbitraryMetadata({"foo": "bar"}),
    )
    assert codec.encode(info.arbitrary_metadata) == b'{"metadata":{"foo":"bar"}}'
    assert not info.is_container


def test_list_folder(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    entries = driver.list_folder(ctx, REF, MD_KEYS)
    assert simulator.calls == [f'POST {TESTER_API}ListFolder {{"ref":{REF_JSON},"mdKeys":["val1","val2","val3"]}}']
    assert len(entries) == 1
    assert entries[0].etag == "in-json-etag"
    assert entries[0].size == 12345
    assert entries[0].arbitrary_metadata.metadata == {"foo": "bar"}


# ------------------------- 上传与下载 -------------------------


def test_initiate_upload(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """InitiateUpload 的元数据按键排序输出，结果解码为字符串 map。"""
    result = driver.initiate_upload(ctx, REF, 12345, {"key3": "val3", "key1": "val1", "key2": "val2"})
    assert simulator.calls == [
        f'POST {TESTER_API}InitiateUpload {{"ref":{REF_JSON},"uploadLength":12345,'
        '"metadata":{"key1":"val1","key2":"val2","key3":"val3"}}'
    ]
    assert result == {"not": "sure", "what": "should be", "returned": "here"}


def test_upload_bytes(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """Upload 为 PUT，正文即文件内容，不经过 JSON 编码。"""
    driver.upload(ctx, FILE_REF, b"shiny!")
    assert simulator.calls == [f"PUT {TESTER_API}Upload/some/file/path.txt shiny!"]


def test_upload_file_object_streams(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """可 seek 的文件对象按块流式发送，服务端收到的正文相同。"""
    driver.upload(ctx, FILE_REF, io.BytesIO(b"shiny!"))
    assert simulator.calls == [f"PUT {TESTER_API}Upload/some/file/path.txt shiny!"]


def test_upload_chunk_iterable(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.upload(ctx, FILE_REF, iter([b"shi", b"ny!"]))
    assert simulator.calls == [f"PUT {TESTER_API}Upload/some/file/path.txt shiny!"]


def test_upload_needs_path(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """只有 resource_id 的引用没有字节流接口的线上映射：抛出 Unimplemented，不发请求。"""
    with pytest.raises(Unimplemented) as exc:
        driver.upload(ctx, Reference(resource_id=ResourceId("s", "o")), b"x")
    assert exc.value.operation == "Upload"
    assert "without a path" in str(exc.value)
    assert simulator.calls == []


def test_download_needs_path(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    id_ref = Reference(resource_id=ResourceId("storage-id", "opaque-id"))
    with pytest.raises(Unimplemented) as exc:
        driver.download(ctx, id_ref)
    assert exc.value.operation == "Download"
    with pytest.raises(Unimplemented) as exc:
        driver.download_revision(ctx, id_ref, "some/revision")
    assert exc.value.operation == "DownloadRevision"
    assert isinstance(exc.value, StorageError)
    assert simulator.calls == []


def test_download(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """Download 为 GET，返回原始字节流。"""
    with driver.download(ctx, FILE_REF) as stream:
        assert stream.status_code == 200
        assert stream.read() == b"the contents of the file"
    assert simulator.calls == [f"GET {TESTER_API}Download/some/file/path.txt "]


# ------------------------- 历史版本 -------------------------


def test_list_revisions(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """两条历史版本，key / 大小 / etag / opaque 与固定应答一致。"""
    versions = driver.list_revisions(ctx, REF)
    assert simulator.calls == [f"POST {TESTER_API}ListRevisions {REF_JSON}"]
    assert versions == [
        FileVersion(
            key="version-12", size=12345, mtime=1234567990, etag="deadb00f", opaque=Opaque({"some": b"data"})
        ),
        FileVersion(key="asdf", size=1235, mtime=1234567890, etag="deadbeef", opaque=Opaque({"different": b"stuff"})),
    ]


def test_download_revision_escapes_key(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """版本 key 中的 / 编码为 %2F，目标路径原样追加。"""
    with driver.download_revision(ctx, FILE_REF, "some/revision") as stream:
        body = b"".join(stream)
    assert body == b"the contents of that revision"
    assert simulator.calls == [f"GET {TESTER_API}DownloadRevision/some%2Frevision/some/file/path.txt "]


def test_restore_revision(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.restore_revision(ctx, FILE_REF, "asdf")
    assert simulator.calls == [f'POST {TESTER_API}RestoreRevision {{"path":"some/file/path.txt","key":"asdf"}}']


# ------------------------- 回收站 -------------------------


def test_list_recycle(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    items = driver.list_recycle(ctx, key="asdf", path="/some/file.txt")
    assert simulator.calls == [f'POST {TESTER_API}ListRecycle {{"path":"/some/file.txt","key":"asdf"}}']
    assert items == [
        RecycleItem(
            key="deleted-version",
            ref=Reference(resource_id=ResourceId(), path="/some/file.txt"),
            size=12345,
            deletion_time=Timestamp(seconds=1234567890),
        )
    ]


def test_restore_recycle_item(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.restore_recycle_item(ctx, "asdf", "original/location/when/deleted.txt", FILE_REF)
    assert simulator.calls == [
        f'POST {TESTER_API}RestoreRecycleItem {{"key":"asdf","path":"original/location/when/deleted.txt",'
        f'"restoreRef":{FILE_REF_JSON}}}'
    ]


def test_purge_recycle_item(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.purge_recycle_item(ctx, "asdf", "original/location/when/deleted.txt")
    assert simulator.calls == [
        f'POST {TESTER_API}PurgeRecycleItem {{"key":"asdf","path":"original/location/when/deleted.txt"}}'
    ]


def test_empty_recycle(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.empty_recycle(ctx)
    assert simulator.calls == [f"POST {TESTER_API}EmptyRecycle "]


# ------------------------- 标识 -------------------------


def test_get_path_by_id(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    path = driver.get_path_by_id(ctx, ResourceId("storage-id", "opaque-id"))
    assert path == "the/path/for/that/id.txt"
    assert simulator.calls == [f'POST {TESTER_API}GetPathByID {{"storage_id":"storage-id","opaque_id":"opaque-id"}}']


# ------------------------- 授权 -------------------------


@pytest.mark.parametrize(
    "method, op",
    [("add_grant", "AddGrant"), ("remove_grant", "RemoveGrant"), ("update_grant", "UpdateGrant")],
)
def test_grant_requests(
    driver: StorageDriver, ctx: RequestContext, simulator: Simulator, method: str, op: str
) -> None:
    """授权请求输出全部 19 个权限位。"""
    getattr(driver, method)(ctx, FILE_REF, GRANT)
    assert simulator.calls == [f'POST {TESTER_API}{op} {{"ref":{FILE_REF_JSON},"g":{GRANT_JSON}}}']
    assert simulator.state is ServerState.EMPTY


def test_deny_grant(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """DenyGrant 只携带被授权者。"""
    driver.deny_grant(ctx, FILE_REF, Grantee(user_id=GRANTEE_USER))
    assert simulator.calls == [f'POST {TESTER_API}DenyGrant {{"ref":{FILE_REF_JSON},"g":{{"Id":{GRANTEE_JSON}}}}}']


def test_list_grants(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    grants = driver.list_grants(ctx, FILE_REF)
    assert simulator.calls == [f"POST {TESTER_API}ListGrants {FILE_REF_JSON}"]
    assert grants == [
        Grant(
            grantee=Grantee(
                user_id=UserId(idp="some-idp", opaque_id="some-opaque-id", type=UserType.PRIMARY),
                type=GranteeType.USER,
            ),
            permissions=ResourcePermissions.all(),
        )
    ]


# ------------------------- 配额、引用、元数据 -------------------------


def test_get_quota(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    assert driver.get_quota(ctx) == Quota(total_bytes=456, used_bytes=123)
    assert simulator.calls == [f"POST {TESTER_API}GetQuota "]


def test_create_reference(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.create_reference(ctx, "some/file/path.txt", "http://bing.com/search?q=dotnet")
    assert simulator.calls == [
        f'POST {TESTER_API}CreateReference {{"path":"some/file/path.txt","url":"http://bing.com/search?q=dotnet"}}'
    ]


def test_shutdown(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.shutdown(ctx)
    assert simulator.calls == [f"POST {TESTER_API}Shutdown "]


def test_set_arbitrary_metadata(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.set_arbitrary_metadata(ctx, FILE_REF, ArbitraryMetadata({"meta": "data", "arbi": "trary"}))
    assert simulator.calls == [
        f'POST {TESTER_API}SetArbitraryMetadata {{"ref":{FILE_REF_JSON},"md":{{"metadata":{{"arbi":"trary","meta":"data"}}}}}}'
    ]


def test_unset_arbitrary_metadata(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    driver.unset_arbitrary_metadata(ctx, FILE_REF, ["arbi"])
    assert simulator.calls == [f'POST {TESTER_API}UnsetArbitraryMetadata {{"ref":{FILE_REF_JSON},"keys":["arbi"]}}']


# ------------------------- 存储空间 -------------------------


def test_list_storage_spaces(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    """过滤条件按给定顺序输出；响应前的空白不影响解码。"""
    filters = [
        StorageSpaceFilter.by_owner(GRANTEE_USER),
        StorageSpaceFilter.by_id("opaque-id"),
        StorageSpaceFilter.by_space_type(SpaceType.HOME),
    ]
    spaces = driver.list_storage_spaces(ctx, filters)
    assert simulator.calls == [
        f"POST {TESTER_API}ListStorageSpaces "
        '[{"type":3,"Term":{"Owner":{"idp":"0.0.0.0:19000","opaque_id":"f7fbf8c8-139b-4376-b307-cf0a8c2d0d9c","type":1}}},'
        '{"type":2,"Term":{"Id":{"opaque_id":"opaque-id"}}},'
        '{"type":4,"Term":{"SpaceType":"home"}}]'
    ]
    assert spaces == [EXPECTED_SPACE]


def test_create_storage_space(driver: StorageDriver, ctx: RequestContext, simulator: Simulator) -> None:
    req = CreateStorageSpaceRequest(
        owner=SPACE_OWNER,
        type=SpaceType.HOME,
        name="My Storage Space",
        quota=SpaceQuota(quota_max_bytes=456, quota_max_files=123),
        opaque=SPACE_OPAQUE,
    )
    space = driver.create_storage_space(ctx, req)
    assert simulator.calls == [
        f"POST {TESTER_API}CreateStorageSpace "
        '{"opaque":{"map":{"bar":{"value":"c2FtYQ=="},"foo":{"value":"c2FtYQ=="}}},'
        '"owner":{"id":{"idp":"some-idp","opaque_id":"some-opaque-user-id","type":1}},'
        '"type":"home","name":"My Storage Space","quota":{"quota_max_bytes":456,"quota_max_files":123}}'
    ]
    assert space == EXPECTED_SPACE


# ------------------------- 无线上映射的操作 -------------------------


@pytest.mark.parametrize(
    "call, op",
    [
        (lambda d, c: d.update_storage_space(c, None), "UpdateStorageSpace"),
        (lambda d, c: d.set_lock(c, REF, None), "SetLock"),
        (lambda d, c: d.get_lock(c, REF), "GetLock"),
        (lambda d, c: d.refresh_lock(c, REF, None), "RefreshLock"),
        (lambda d, c: d.unlock(c, REF), "Unlock"),
    ],
)
def test_unimplemented_operations(
    driver: StorageDriver, ctx: RequestContext, simulator: Simulator, call, op: str
) -> None:
    """没有线上映射的操作直接抛 Unimplemented，不发请求。"""
    with pytest.raises(Unimplemented) as exc:
        call(driver, ctx)
    assert exc.value.operation == op
    assert isinstance(exc.value, NotImplementedError)
    assert simulator.calls == []

"""
模拟服务端的默认转移表。

两组数据：
- 用户 tester：每个操作一条不限状态的固定应答，用于逐个操作核对请求编码与结果解码；
- 用户 einstein：按状态区分的应答，模拟一个家目录从创建、建子目录、删除进回收站、
  恢复、授权、引用、元数据到版本恢复的完整过程。

请求签名都以线上原文书写（"<方法> <路径> <正文>"），匹配时按结构比较。
"""

from __future__ import annotations

import json
from typing import Any

from ncfsapi.models import PERMISSION_FIELDS
from ncfsapi.simulator import ServerState as S
from ncfsapi.simulator import Transition, TransitionTable

TESTER = "/apps/sciencemesh/~tester/api/"
EINSTEIN = "/apps/sciencemesh/~einstein/api/"


def _json(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"))


def _perms(*names: str) -> dict[str, bool]:
    return {name: name in names for name in PERMISSION_FIELDS}


_ALL_PERMS = _perms(*PERMISSION_FIELDS)

# ------------------------- tester：逐操作固定应答 -------------------------

_REF = '{"resource_id":{"storage_id":"storage-id","opaque_id":"opaque-id"},"path":"/some/path"}'
_FILE_REF = '{"resource_id":{"storage_id":"storage-id","opaque_id":"opaque-id"},"path":"some/file/path.txt"}'
_MD_KEYS = '["val1","val2","val3"]'
_GRANTEE_USER = '{"UserId":{"idp":"0.0.0.0:19000","opaque_id":"f7fbf8c8-139b-4376-b307-cf0a8c2d0d9c","type":1}}'
_GRANT = '{"grantee":{"Id":' + _GRANTEE_USER + '},"permissions":' + _json(_ALL_PERMS) + "}"

_TESTER_INFO = _json(
    {
        "opaque": {},
        "type": 1,
        "id": {"opaque_id": "fileid-/some/path"},
        "checksum": {},
        "etag": "in-json-etag",
        "mime_type": "in-json-mimetype",
        "mtime": {"seconds": 1234567890},
        "path": "/some/path",
        "permission_set": {},
        "size": 12345,
        "canonical_metadata": {},
        "arbitrary_metadata": {"metadata": {"foo": "bar"}},
    }
)

_TESTER_REVISIONS = _json(
    [
        {
            "opaque": {"map": {"some": {"value": "ZGF0YQ=="}}},
            "key": "version-12",
            "size": 12345,
            "mtime": 1234567990,
            "etag": "deadb00f",
        },
        {
            "opaque": {"map": {"different": {"value": "c3R1ZmY="}}},
            "key": "asdf",
            "size": 1235,
            "mtime": 1234567890,
            "etag": "deadbeef",
        },
    ]
)

_TESTER_RECYCLE = _json(
    [
        {
            "opaque": {},
            "key": "deleted-version",
            "ref": {"resource_id": {}, "path": "/some/file.txt"},
            "size": 12345,
            "deletion_time": {"seconds": 1234567890},
        }
    ]
)

_TESTER_GRANTS = _json(
    [
        {
            "grantee": {"type": 1, "Id": {"UserId": {"idp": "some-idp", "opaque_id": "some-opaque-id", "type": 1}}},
            "permissions": _ALL_PERMS,
        }
    ]
)

_SPACE_OPAQUE = '{"map":{"bar":{"value":"c2FtYQ=="},"foo":{"value":"c2FtYQ=="}}}'
_SPACE_OWNER = '{"id":{"idp":"some-idp","opaque_id":"some-opaque-user-id","type":1}}'
_SPACE_QUOTA = '{"quota_max_bytes":456,"quota_max_files":123}'
_SPACE = (
    '{"opaque":' + _SPACE_OPAQUE + ',"id":{"opaque_id":"some-opaque-storage-space-id"},"owner":' + _SPACE_OWNER
    + ',"root":{"storage_id":"some-storage-id","opaque_id":"some-opaque-root-id"},"name":"My Storage Space","quota":'
    + _SPACE_QUOTA + ',"space_type":"home","mtime":{"seconds":1234567890}}'
)
_SPACE_FILTERS = (
    '[{"type":3,"Term":{"Owner":{"idp":"0.0.0.0:19000","opaque_id":"f7fbf8c8-139b-4376-b307-cf0a8c2d0d9c","type":1}}},'
    '{"type":2,"Term":{"Id":{"opaque_id":"opaque-id"}}},'
    '{"type":4,"Term":{"SpaceType":"home"}}]'
)
_CREATE_SPACE = (
    '{"opaque":' + _SPACE_OPAQUE + ',"owner":' + _SPACE_OWNER
    + ',"type":"home","name":"My Storage Space","quota":' + _SPACE_QUOTA + "}"
)


def _ok(body: str = "", code: int = 200) -> Transition:
    return Transition(code, body, S.EMPTY)


TESTER_ROWS: list[tuple[str, S | None, Transition]] = [
    (f"POST {TESTER}GetHome ", None, Transition(200, "yes we are", S.HOME)),
    (f"POST {TESTER}CreateHome ", None, _ok(code=201)),
    (f"POST {TESTER}CreateDir {_REF}", None, _ok(code=201)),
    (f"POST {TESTER}Delete {_REF}", None, _ok()),
    (
        f"POST {TESTER}Move "
        '{"from":{"resource_id":{"storage_id":"storage-id-1","opaque_id":"opaque-id-1"},"path":"/some/old/path"},'
        '"to":{"resource_id":{"storage_id":"storage-id-2","opaque_id":"opaque-id-2"},"path":"/some/new/path"}}',
        None,
        _ok(),
    ),
    (f'POST {TESTER}GetMD {{"ref":{_REF},"mdKeys":{_MD_KEYS}}}', None, _ok(_TESTER_INFO)),
    (f'POST {TESTER}ListFolder {{"ref":{_REF},"mdKeys":{_MD_KEYS}}}', None, _ok(f"[{_TESTER_INFO}]")),
    (
        f'POST {TESTER}InitiateUpload {{"ref":{_REF},"uploadLength":12345,'
        '"metadata":{"key1":"val1","key2":"val2","key3":"val3"}}',
        None,
        _ok('{ "not":"sure", "what": "should be", "returned": "here" }'),
    ),
    (f"PUT {TESTER}Upload/some/file/path.txt shiny!", None, _ok()),
    (f"GET {TESTER}Download/some/file/path.txt ", None, _ok("the contents of the file")),
    (f"POST {TESTER}ListRevisions {_REF}", None, _ok(_TESTER_REVISIONS)),
    (f"GET {TESTER}DownloadRevision/some%2Frevision/some/file/path.txt ", None, _ok("the contents of that revision")),
    (f'POST {TESTER}RestoreRevision {{"path":"some/file/path.txt","key":"asdf"}}', None, _ok()),
    (f'POST {TESTER}ListRecycle {{"path":"/some/file.txt","key":"asdf"}}', None, _ok(_TESTER_RECYCLE)),
    (
        f'POST {TESTER}RestoreRecycleItem {{"key":"asdf","path":"original/location/when/deleted.txt",'
        f'"restoreRef":{_FILE_REF}}}',
        None,
        _ok(),
    ),
    (f'POST {TESTER}PurgeRecycleItem {{"key":"asdf","path":"original/location/when/deleted.txt"}}', None, _ok()),
    (f"POST {TESTER}EmptyRecycle ", None, _ok()),
    (
        f'POST {TESTER}GetPathByID {{"storage_id":"storage-id","opaque_id":"opaque-id"}}',
        None,
        _ok("the/path/for/that/id.txt"),
    ),
    (f'POST {TESTER}AddGrant {{"ref":{_FILE_REF},"g":{_GRANT}}}', None, _ok()),
    (f'POST {TESTER}DenyGrant {{"ref":{_FILE_REF},"g":{{"Id":{_GRANTEE_USER}}}}}', None, _ok()),
    (f'POST {TESTER}RemoveGrant {{"ref":{_FILE_REF},"g":{_GRANT}}}', None, _ok()),
    (f'POST {TESTER}UpdateGrant {{"ref":{_FILE_REF},"g":{_GRANT}}}', None, _ok()),
    (f"POST {TESTER}ListGrants {_FILE_REF}", None, _ok(_TESTER_GRANTS)),
    (f"POST {TESTER}GetQuota ", None, _ok('{"totalBytes":456,"usedBytes":123}')),
    (
        f'POST {TESTER}CreateReference {{"path":"some/file/path.txt","url":"http://bing.com/search?q=dotnet"}}',
        None,
        _ok(),
    ),
    (f"POST {TESTER}Shutdown ", None, _ok()),
    (
        f'POST {TESTER}SetArbitraryMetadata {{"ref":{_FILE_REF},"md":{{"metadata":{{"arbi":"trary","meta":"data"}}}}}}',
        None,
        _ok(),
    ),
    (f'POST {TESTER}UnsetArbitraryMetadata {{"ref":{_FILE_REF},"keys":["arbi"]}}', None, _ok()),
    (f"POST {TESTER}ListStorageSpaces {_SPACE_FILTERS}", None, _ok(f"\t[{_SPACE}]")),
    (f"POST {TESTER}CreateStorageSpace {_CREATE_SPACE}", None, _ok(_SPACE)),
]

# ------------------------- einstein：按状态区分的家目录流程 -------------------------

_SUBDIR_KEY = "fileid-subdir"


def _dir_info(path: str, **extra: Any) -> dict[str, Any]:
    info = {
        "type": 2,
        "id": {"storage_id": "00000000-0000-0000-0000-000000000000", "opaque_id": f"fileid-{path}"},
        "etag": f"etag-{path.strip('/') or 'root'}",
        "mime_type": "httpd/unix-directory",
        "mtime": {"seconds": 1234567890},
        "path": path,
        "permission_set": _ALL_PERMS,
        "size": 1,
    }
    info.update(extra)
    return info


def _file_info(path: str, size: int) -> dict[str, Any]:
    return _dir_info(path, type=1, mime_type="text/plain", size=size)


def _getmd(path: str) -> str:
    return f'POST {EINSTEIN}GetMD {{"ref":{{"path":"{path}"}},"mdKeys":[]}}'


def _listfolder(path: str) -> str:
    return f'POST {EINSTEIN}ListFolder {{"ref":{{"path":"{path}"}},"mdKeys":[]}}'


def _found(body: Any, state: S) -> Transition:
    return Transition(200, _json(body), state)


def _missing(state: S) -> Transition:
    return Transition(404, "", state)


def _einstein_grant(*names: str) -> dict[str, Any]:
    return {
        "grantee": {"type": 1, "Id": {"UserId": {"idp": "cernbox.cern.ch", "opaque_id": "marie", "type": 1}}},
        "permissions": _perms(*names),
    }


_GRANT_ADDED = _einstein_grant("stat", "move")
_GRANT_UPDATED = _einstein_grant("stat", "move", "delete")
_SUBDIR_REF = '{"path":"/subdir"}'

_DELETED_SUBDIR = {
    "key": _SUBDIR_KEY,
    "ref": {"path": "/subdir"},
    "size": 1,
    "deletion_time": {"seconds": 1234567890},
    "type": 2,
}

_VERSION_1 = {"key": "version-1", "size": 1, "mtime": 1234567890, "etag": "v1-etag"}
_VERSION_2 = {"key": "version-2", "size": 2, "mtime": 1234567990, "etag": "v2-etag"}

_READ_ONLY_STATES = (S.SUBDIR, S.SUBDIR_NEWDIR, S.GRANT_ADDED, S.GRANT_UPDATED)


def _einstein_rows() -> list[tuple[str, S | None, Transition]]:
    rows: list[tuple[str, S | None, Transition]] = [
        (f"POST {EINSTEIN}CreateHome ", None, Transition(200, "", S.HOME)),
        (f"POST {EINSTEIN}EmptyRecycle ", None, Transition(200, "", S.EMPTY)),
    ]

    # 建目录：结果取决于另一个目录是否已存在
    for state, nxt in ((S.EMPTY, S.SUBDIR), (S.HOME, S.SUBDIR), (S.NEWDIR, S.SUBDIR_NEWDIR)):
        rows.append((f"POST {EINSTEIN}CreateDir {_SUBDIR_REF}", state, Transition(200, "", nxt)))
    for state, nxt in ((S.EMPTY, S.NEWDIR), (S.HOME, S.NEWDIR), (S.SUBDIR, S.SUBDIR_NEWDIR)):
        rows.append((f'POST {EINSTEIN}CreateDir {{"path":"/newdir"}}', state, Transition(200, "", nxt)))

    # 家目录根
    rows.append((_getmd("/"), S.EMPTY, _missing(S.EMPTY)))
    for state in (S.HOME, S.SUBDIR, S.NEWDIR, S.SUBDIR_NEWDIR):
        rows.append((_getmd("/"), state, _found(_dir_info("/"), state)))
    rows.append((_listfolder("/"), S.EMPTY, _missing(S.EMPTY)))
    rows.append((_listfolder("/"), S.HOME, _found([], S.HOME)))
    rows.append((_listfolder("/"), S.SUBDIR, _found([_dir_info("/subdir")], S.SUBDIR)))
    rows.append((_listfolder("/"), S.NEWDIR, _found([_dir_info("/newdir")], S.NEWDIR)))
    rows.append(
        (_listfolder("/"), S.SUBDIR_NEWDIR, _found([_dir_info("/newdir"), _dir_info("/subdir")], S.SUBDIR_NEWDIR))
    )

    # /newdir
    for state in (S.EMPTY, S.HOME, S.SUBDIR):
        rows.append((_getmd("/newdir"), state, _missing(state)))
    for state in (S.NEWDIR, S.SUBDIR_NEWDIR):
        rows.append((_getmd("/newdir"), state, _found(_dir_info("/newdir"), state)))

    # /subdir
    for state in (S.EMPTY, S.HOME, S.NEWDIR, S.RECYCLE, S.MOVED):
        rows.append((_getmd("/subdir"), state, _missing(state)))
    for state in _READ_ONLY_STATES:
        rows.append((_getmd("/subdir"), state, _found(_dir_info("/subdir"), state)))
    rows.append(
        (
            _getmd("/subdir"),
            S.METADATA,
            _found(_dir_info("/subdir", arbitrary_metadata={"metadata": {"foo": "bar"}}), S.METADATA),
        )
    )

    # 删除进回收站、列出、恢复、清除
    rows.append((f"POST {EINSTEIN}Delete {_SUBDIR_REF}", S.SUBDIR, Transition(200, "", S.RECYCLE)))
    list_recycle = f'POST {EINSTEIN}ListRecycle {{"path":"","key":""}}'
    rows.append((list_recycle, S.EMPTY, _found([], S.EMPTY)))
    rows.append((list_recycle, S.RECYCLE, _found([_DELETED_SUBDIR], S.RECYCLE)))
    rows.append(
        (
            f'POST {EINSTEIN}RestoreRecycleItem {{"key":"{_SUBDIR_KEY}","path":"/subdir"}}',
            S.RECYCLE,
            Transition(200, "", S.SUBDIR),
        )
    )
    rows.append(
        (
            f'POST {EINSTEIN}RestoreRecycleItem {{"key":"{_SUBDIR_KEY}","path":"/subdir",'
            '"restoreRef":{"path":"/subdirRestored"}}',
            S.RECYCLE,
            Transition(200, "", S.FILE_RESTORED),
        )
    )
    rows.append(
        (
            f'POST {EINSTEIN}PurgeRecycleItem {{"key":"{_SUBDIR_KEY}","path":"/subdir"}}',
            S.RECYCLE,
            Transition(200, "", S.EMPTY),
        )
    )
    for state in (S.EMPTY, S.RECYCLE, S.SUBDIR):
        rows.append((_getmd("/subdirRestored"), state, _missing(state)))
    rows.append((_getmd("/subdirRestored"), S.FILE_RESTORED, _found(_dir_info("/subdirRestored"), S.FILE_RESTORED)))

    # 移动
    rows.append(
        (
            f'POST {EINSTEIN}Move {{"from":{_SUBDIR_REF},"to":{{"path":"/new_subdir"}}}}',
            S.SUBDIR,
            Transition(200, "", S.MOVED),
        )
    )
    for state in (S.EMPTY, S.SUBDIR):
        rows.append((_getmd("/new_subdir"), state, _missing(state)))
    rows.append((_getmd("/new_subdir"), S.MOVED, _found(_dir_info("/new_subdir"), S.MOVED)))
    by_id = f'POST {EINSTEIN}GetPathByID {{"storage_id":"00000000-0000-0000-0000-000000000000","opaque_id":"fileid-/subdir"}}'
    rows.append((by_id, S.SUBDIR, Transition(200, "/subdir", S.SUBDIR)))
    rows.append((by_id, S.MOVED, Transition(200, "/new_subdir", S.MOVED)))

    # 授权：添加 → 更新（整体替换）→ 移除
    add = f'POST {EINSTEIN}AddGrant {{"ref":{_SUBDIR_REF},"g":{_json(_GRANT_ADDED)}}}'
    update = f'POST {EINSTEIN}UpdateGrant {{"ref":{_SUBDIR_REF},"g":{_json(_GRANT_UPDATED)}}}'
    rows.append((add, S.SUBDIR, Transition(200, "", S.GRANT_ADDED)))
    rows.append((update, S.GRANT_ADDED, Transition(200, "", S.GRANT_UPDATED)))
    rows.append(
        (
            f'POST {EINSTEIN}RemoveGrant {{"ref":{_SUBDIR_REF},"g":{_json(_GRANT_ADDED)}}}',
            S.GRANT_ADDED,
            Transition(200, "", S.SUBDIR),
        )
    )
    rows.append(
        (
            f'POST {EINSTEIN}RemoveGrant {{"ref":{_SUBDIR_REF},"g":{_json(_GRANT_UPDATED)}}}',
            S.GRANT_UPDATED,
            Transition(200, "", S.SUBDIR),
        )
    )
    list_grants = f"POST {EINSTEIN}ListGrants {_SUBDIR_REF}"
    rows.append((list_grants, S.SUBDIR, _found([], S.SUBDIR)))
    rows.append((list_grants, S.GRANT_ADDED, _found([_GRANT_ADDED], S.GRANT_ADDED)))
    rows.append((list_grants, S.GRANT_UPDATED, _found([_GRANT_UPDATED], S.GRANT_UPDATED)))

    # 引用
    create_ref = f'POST {EINSTEIN}CreateReference {{"path":"/Shares/reference","url":"cs3:marie/shared"}}'
    for state in (S.EMPTY, S.HOME):
        rows.append((create_ref, state, Transition(200, "", S.REFERENCE)))
    for state in (S.EMPTY, S.HOME, S.SUBDIR):
        rows.append((_listfolder("/Shares"), state, _missing(state)))
    rows.append(
        (
            _listfolder("/Shares"),
            S.REFERENCE,
            _found(
                [_dir_info("/Shares/reference", type=3, mime_type="", target="cs3:marie/shared")],
                S.REFERENCE,
            ),
        )
    )

    # 自定义元数据
    rows.append(
        (
            f'POST {EINSTEIN}SetArbitraryMetadata {{"ref":{_SUBDIR_REF},"md":{{"metadata":{{"foo":"bar"}}}}}}',
            S.SUBDIR,
            Transition(200, "", S.METADATA),
        )
    )
    rows.append(
        (
            f'POST {EINSTEIN}UnsetArbitraryMetadata {{"ref":{_SUBDIR_REF},"keys":["foo"]}}',
            S.METADATA,
            Transition(200, "", S.SUBDIR),
        )
    )

    # 历史版本：恢复旧版本后当前内容变小，并多出一条版本记录
    versioned = '{"path":"/versionedFile"}'
    rows.append((_getmd("/versionedFile"), S.EMPTY, _found(_file_info("/versionedFile", 2), S.EMPTY)))
    rows.append(
        (_getmd("/versionedFile"), S.FILE_RESTORED, _found(_file_info("/versionedFile", 1), S.FILE_RESTORED))
    )
    rows.append((f"POST {EINSTEIN}ListRevisions {versioned}", S.EMPTY, _found([_VERSION_1], S.EMPTY)))
    rows.append(
        (f"POST {EINSTEIN}ListRevisions {versioned}", S.FILE_RESTORED, _found([_VERSION_1, _VERSION_2], S.FILE_RESTORED))
    )
    rows.append(
        (
            f'POST {EINSTEIN}RestoreRevision {{"path":"/versionedFile","key":"version-1"}}',
            S.EMPTY,
            Transition(200, "", S.FILE_RESTORED),
        )
    )
    return rows


EINSTEIN_ROWS = _einstein_rows()


def default_table() -> TransitionTable:
    """新建一份默认转移表（每个 Simulator 各自持有）。"""
    return TransitionTable(TESTER_ROWS + EINSTEIN_ROWS)

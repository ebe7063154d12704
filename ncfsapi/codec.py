"""
线上编解码：把调用参数编码为请求正文，把响应正文解码为结果对象。

模拟服务端按调用签名匹配，因此编码必须确定：
- JSON 紧凑输出（无空白），字段按固定顺序；自由字符串 map 按键排序；
- Reference 中缺省的 resource_id / path 不输出（不输出 null，也不输出空串）；
- 操作自己的信封字段（如 RestoreRevision 的 path、key）总是输出，即使为空串；
- 权限集合 19 个布尔位总是全部输出。

解码失败统一抛出 DecodeError，不会把 KeyError / TypeError 之类泄露给调用方。
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Callable, Mapping
from typing import Any

from ncfsapi.errors import DecodeError
from ncfsapi.models import (
    PERMISSION_FIELDS,
    ArbitraryMetadata,
    CreateStorageSpaceRequest,
    FileVersion,
    FilterType,
    Grant,
    Grantee,
    GranteeType,
    GroupId,
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
    StorageSpace,
    StorageSpaceFilter,
    Timestamp,
    UserId,
    UserType,
)

JSON_CONTENT_TYPE = "application/json"


def dumps(obj: Any) -> bytes:
    """紧凑 JSON，UTF-8。"""
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


# ------------------------- 编码：模型 → JSON 对象 -------------------------


def _sorted_map(values: Mapping[str, str]) -> dict[str, str]:
    return {k: values[k] for k in sorted(values)}


def resource_id_obj(rid: ResourceId) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if rid.storage_id:
        out["storage_id"] = rid.storage_id
    if rid.opaque_id:
        out["opaque_id"] = rid.opaque_id
    return out


def reference_obj(ref: Reference) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if ref.resource_id is not None:
        out["resource_id"] = resource_id_obj(ref.resource_id)
    if ref.path:
        out["path"] = ref.path
    return out


def permissions_obj(perms: ResourcePermissions) -> dict[str, bool]:
    return {name: bool(getattr(perms, name)) for name in PERMISSION_FIELDS}


def user_id_obj(uid: UserId) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if uid.idp:
        out["idp"] = uid.idp
    if uid.opaque_id:
        out["opaque_id"] = uid.opaque_id
    if uid.type:
        out["type"] = int(uid.type)
    return out


def group_id_obj(gid: GroupId) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if gid.idp:
        out["idp"] = gid.idp
    if gid.opaque_id:
        out["opaque_id"] = gid.opaque_id
    return out


def grantee_obj(grantee: Grantee) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if grantee.type:
        out["type"] = int(grantee.type)
    if grantee.user_id is not None:
        out["Id"] = {"UserId": user_id_obj(grantee.user_id)}
    elif grantee.group_id is not None:
        out["Id"] = {"GroupId": group_id_obj(grantee.group_id)}
    return out


def grant_obj(grant: Grant) -> dict[str, Any]:
    return {"grantee": grantee_obj(grant.grantee), "permissions": permissions_obj(grant.permissions)}


def opaque_obj(opaque: Opaque) -> dict[str, Any]:
    if not opaque.entries:
        return {}
    return {
        "map": {
            k: {"value": base64.b64encode(opaque.entries[k]).decode("ascii")}
            for k in sorted(opaque.entries)
        }
    }


def space_quota_obj(quota: SpaceQuota) -> dict[str, Any]:
    return {"quota_max_bytes": quota.quota_max_bytes, "quota_max_files": quota.quota_max_files}


def filter_obj(flt: StorageSpaceFilter) -> dict[str, Any]:
    if flt.type == FilterType.OWNER:
        term: dict[str, Any] = {"Owner": user_id_obj(flt.owner or UserId())}
    elif flt.type == FilterType.ID:
        term = {"Id": {"opaque_id": flt.id}}
    elif flt.type == FilterType.SPACE_TYPE:
        term = {"SpaceType": flt.space_type}
    elif flt.type == FilterType.PATH:
        term = {"Path": flt.path}
    else:
        raise ValueError(f"unsupported storage space filter type: {flt.type!r}")
    return {"type": int(flt.type), "Term": term}


def to_wire(value: Any) -> Any:
    """把模型对象转换为线上 JSON 结构（dict/list/标量）。"""
    if isinstance(value, Reference):
        return reference_obj(value)
    if isinstance(value, ResourceId):
        return resource_id_obj(value)
    if isinstance(value, ResourcePermissions):
        return permissions_obj(value)
    if isinstance(value, Grant):
        return grant_obj(value)
    if isinstance(value, Grantee):
        return grantee_obj(value)
    if isinstance(value, UserId):
        return user_id_obj(value)
    if isinstance(value, ArbitraryMetadata):
        return {"metadata": _sorted_map(value.metadata)}
    if isinstance(value, Opaque):
        return opaque_obj(value)
    if isinstance(value, StorageSpaceFilter):
        return filter_obj(value)
    if isinstance(value, SpaceQuota):
        return space_quota_obj(value)
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    if isinstance(value, Mapping):
        return _sorted_map(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    raise TypeError(f"no wire encoding for {type(value).__name__}")


def encode(value: Any) -> bytes:
    """encode(value) -> bytes：同一参数两次编码结果逐字节相同。"""
    return dumps(to_wire(value))


# ------------------------- 编码：各操作请求正文 -------------------------


def encode_md_request(ref: Reference, md_keys: list[str] | None) -> bytes:
    """GetMD / ListFolder。"""
    return dumps({"ref": reference_obj(ref), "mdKeys": list(md_keys or [])})


def encode_move(old_ref: Reference, new_ref: Reference) -> bytes:
    return dumps({"from": reference_obj(old_ref), "to": reference_obj(new_ref)})


def encode_initiate_upload(ref: Reference, upload_length: int, metadata: Mapping[str, str] | None) -> bytes:
    return dumps(
        {
            "ref": reference_obj(ref),
            "uploadLength": int(upload_length),
            "metadata": _sorted_map(metadata or {}),
        }
    )


def encode_restore_revision(ref: Reference, key: str) -> bytes:
    return dumps({"path": ref.path, "key": key})


def encode_list_recycle(key: str, path: str) -> bytes:
    return dumps({"path": path, "key": key})


def encode_restore_recycle_item(key: str, path: str, restore_ref: Reference | None) -> bytes:
    body: dict[str, Any] = {"key": key, "path": path}
    if restore_ref is not None:
        body["restoreRef"] = reference_obj(restore_ref)
    return dumps(body)


def encode_purge_recycle_item(key: str, path: str) -> bytes:
    return dumps({"key": key, "path": path})


def encode_grant_request(ref: Reference, grant: Grant) -> bytes:
    """AddGrant / RemoveGrant / UpdateGrant。"""
    return dumps({"ref": reference_obj(ref), "g": grant_obj(grant)})


def encode_deny_grant(ref: Reference, grantee: Grantee) -> bytes:
    return dumps({"ref": reference_obj(ref), "g": grantee_obj(grantee)})


def encode_create_reference(path: str, target_uri: str) -> bytes:
    return dumps({"path": path, "url": target_uri})


def encode_set_metadata(ref: Reference, md: ArbitraryMetadata) -> bytes:
    return dumps({"ref": reference_obj(ref), "md": {"metadata": _sorted_map(md.metadata)}})


def encode_unset_metadata(ref: Reference, keys: list[str]) -> bytes:
    return dumps({"ref": reference_obj(ref), "keys": list(keys)})


def encode_space_filters(filters: list[StorageSpaceFilter]) -> bytes:
    return dumps([filter_obj(f) for f in filters])


def encode_create_space(req: CreateStorageSpaceRequest) -> bytes:
    body: dict[str, Any] = {}
    if req.opaque.entries:
        body["opaque"] = opaque_obj(req.opaque)
    body["owner"] = {"id": user_id_obj(req.owner)}
    body["type"] = req.type
    body["name"] = req.name
    if req.quota is not None:
        body["quota"] = space_quota_obj(req.quota)
    return dumps(body)


# ------------------------- 解码 -------------------------


class _Shape(Exception):
    """内部：结构不符，由 decode() 转成 DecodeError。"""


def loads(data: bytes, ep: str | None = None) -> Any:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as ex:
        raise DecodeError(f"response is not valid UTF-8: {ex}", ep=ep) from ex
    try:
        return json.loads(text)
    except ValueError as ex:
        raise DecodeError(f"response could not be decoded as JSON: {ex}", ep=ep, resptext=text) from ex


def decode_text(data: bytes, ep: str | None = None) -> str:
    """GetHome / GetPathByID 的纯文本结果。"""
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as ex:
        raise DecodeError(f"response is not valid UTF-8: {ex}", ep=ep) from ex


def _obj(value: Any, what: str) -> dict[str, Any]:
    # null 与缺省等价于空对象
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _Shape(f"{what}: expected object, got {type(value).__name__}")
    return value


def _list(value: Any, what: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise _Shape(f"{what}: expected array, got {type(value).__name__}")
    return value


def _str(d: dict[str, Any], key: str) -> str:
    v = d.get(key)
    if v is None:
        return ""
    if not isinstance(v, str):
        raise _Shape(f"{key}: expected string, got {type(v).__name__}")
    return v


def _int(d: dict[str, Any], key: str) -> int:
    v = d.get(key)
    if v is None:
        return 0
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise _Shape(f"{key}: expected number, got {type(v).__name__}")
    if isinstance(v, float):
        if not v.is_integer():
            raise _Shape(f"{key}: expected integer, got {v}")
        v = int(v)
    return v


def _bool(d: dict[str, Any], key: str) -> bool:
    v = d.get(key)
    if v is None:
        return False
    if not isinstance(v, bool):
        raise _Shape(f"{key}: expected boolean, got {type(v).__name__}")
    return v


def _enum(enum_cls: Any, d: dict[str, Any], key: str) -> Any:
    raw = _int(d, key)
    try:
        return enum_cls(raw)
    except ValueError as ex:
        raise _Shape(f"{key}: unknown {enum_cls.__name__} value {raw}") from ex


def _string_map(value: Any, what: str) -> dict[str, str]:
    d = _obj(value, what)
    for k, v in d.items():
        if not isinstance(v, str):
            raise _Shape(f"{what}.{k}: expected string, got {type(v).__name__}")
    return dict(d)


def _resource_id(value: Any) -> ResourceId | None:
    if value is None:
        return None
    d = _obj(value, "resource_id")
    return ResourceId(storage_id=_str(d, "storage_id"), opaque_id=_str(d, "opaque_id"))


def _reference(value: Any) -> Reference | None:
    if value is None:
        return None
    d = _obj(value, "ref")
    rid = _resource_id(d.get("resource_id"))
    path = _str(d, "path")
    if rid is None and not path:
        return None
    return Reference(resource_id=rid, path=path)


def _timestamp(value: Any) -> Timestamp | None:
    if value is None:
        return None
    d = _obj(value, "timestamp")
    return Timestamp(seconds=_int(d, "seconds"), nanos=_int(d, "nanos"))


def _permissions(value: Any) -> ResourcePermissions:
    d = _obj(value, "permissions")
    return ResourcePermissions(**{name: _bool(d, name) for name in PERMISSION_FIELDS})


def _user_id(value: Any) -> UserId | None:
    if value is None:
        return None
    d = _obj(value, "user_id")
    return UserId(idp=_str(d, "idp"), opaque_id=_str(d, "opaque_id"), type=_enum(UserType, d, "type"))


def _grantee(value: Any) -> Grantee:
    d = _obj(value, "grantee")
    ident = _obj(d.get("Id"), "grantee.Id")
    user_id = _user_id(ident.get("UserId"))
    group_id = None
    if "GroupId" in ident:
        g = _obj(ident["GroupId"], "grantee.Id.GroupId")
        group_id = GroupId(idp=_str(g, "idp"), opaque_id=_str(g, "opaque_id"))
    return Grantee(user_id=user_id, group_id=group_id, type=_enum(GranteeType, d, "type"))


def _grant(value: Any) -> Grant:
    d = _obj(value, "grant")
    return Grant(grantee=_grantee(d.get("grantee")), permissions=_permissions(d.get("permissions")))


def _opaque(value: Any) -> Opaque:
    d = _obj(value, "opaque")
    entries: dict[str, bytes] = {}
    for k, entry in _obj(d.get("map"), "opaque.map").items():
        raw = _str(_obj(entry, f"opaque.map.{k}"), "value")
        try:
            entries[k] = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as ex:
            raise _Shape(f"opaque.map.{k}: invalid base64 value") from ex
    return Opaque(entries=entries)


def _checksum(value: Any) -> ResourceChecksum | None:
    if value is None:
        return None
    d = _obj(value, "checksum")
    return ResourceChecksum(type=_int(d, "type"), sum=_str(d, "sum"))


def _resource_info(value: Any) -> ResourceInfo:
    d = _obj(value, "resource_info")
    md = _obj(d.get("arbitrary_metadata"), "arbitrary_metadata")
    return ResourceInfo(
        type=_enum(ResourceType, d, "type"),
        id=_resource_id(d.get("id")),
        checksum=_checksum(d.get("checksum")),
        etag=_str(d, "etag"),
        mime_type=_str(d, "mime_type"),
        mtime=_timestamp(d.get("mtime")),
        path=_str(d, "path"),
        permission_set=_permissions(d.get("permission_set")),
        size=_int(d, "size"),
        owner=_user_id(d.get("owner")),
        target=_str(d, "target"),
        arbitrary_metadata=ArbitraryMetadata(metadata=_string_map(md.get("metadata"), "arbitrary_metadata.metadata")),
    )


def _file_version(value: Any) -> FileVersion:
    d = _obj(value, "file_version")
    return FileVersion(
        key=_str(d, "key"),
        size=_int(d, "size"),
        mtime=_int(d, "mtime"),
        etag=_str(d, "etag"),
        opaque=_opaque(d.get("opaque")),
    )


def _recycle_item(value: Any) -> RecycleItem:
    d = _obj(value, "recycle_item")
    return RecycleItem(
        key=_str(d, "key"),
        ref=_reference(d.get("ref")),
        size=_int(d, "size"),
        deletion_time=_timestamp(d.get("deletion_time")) or Timestamp(),
        type=_enum(ResourceType, d, "type"),
        opaque=_opaque(d.get("opaque")),
    )


def _quota(value: Any) -> Quota:
    d = _obj(value, "quota")
    return Quota(total_bytes=_int(d, "totalBytes"), used_bytes=_int(d, "usedBytes"))


def _storage_space(value: Any) -> StorageSpace:
    d = _obj(value, "storage_space")
    owner = _obj(d.get("owner"), "owner")
    quota = d.get("quota")
    q = None
    if quota is not None:
        qd = _obj(quota, "quota")
        q = SpaceQuota(quota_max_bytes=_int(qd, "quota_max_bytes"), quota_max_files=_int(qd, "quota_max_files"))
    return StorageSpace(
        id=_str(_obj(d.get("id"), "id"), "opaque_id"),
        owner=_user_id(owner.get("id")),
        root=_resource_id(d.get("root")),
        name=_str(d, "name"),
        quota=q,
        space_type=_str(d, "space_type"),
        mtime=_timestamp(d.get("mtime")),
        opaque=_opaque(d.get("opaque")),
    )


def _str_dict(value: Any) -> dict[str, str]:
    return _string_map(value, "response")


_DECODERS: dict[Any, Callable[[Any], Any]] = {
    ResourceInfo: _resource_info,
    FileVersion: _file_version,
    RecycleItem: _recycle_item,
    Grant: _grant,
    Quota: _quota,
    StorageSpace: _storage_space,
    ArbitraryMetadata: lambda v: ArbitraryMetadata(_string_map(_obj(v, "md").get("metadata"), "metadata")),
    dict: _str_dict,
}


def decode(data: bytes, target: Any, *, many: bool = False, ep: str | None = None) -> Any:
    """
    decode(bytes, target_shape)：把响应正文解码为 target 类型（many=True 时为其列表）。

    :param data: 响应正文
    :param target: ResourceInfo / FileVersion / RecycleItem / Grant / Quota / StorageSpace / dict
    :param many: 是否为数组
    :param ep: 接口地址，仅用于错误信息
    :raises DecodeError: 非法 JSON 或结构不符
    """
    try:
        convert = _DECODERS[target]
    except KeyError:
        raise TypeError(f"no decoder for {target!r}") from None
    obj = loads(data, ep=ep)
    try:
        if many:
            return [convert(item) for item in _list(obj, "response")]
        return convert(obj)
    except _Shape as ex:
        raise DecodeError(f"unexpected response shape: {ex}", ep=ep, resptext=data.decode("utf-8", "replace")) from ex

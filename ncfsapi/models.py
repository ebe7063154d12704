"""
存储驱动数据模型（与远端 sciencemesh 接口的 JSON 字段一一对应）。

所有结果值均为不可变对象，每次调用都会重新构造，调用方拿到后不会被驱动再修改。
- Reference：按 resource_id 和/或 path 定位一个条目，二者至少有一个。
- ResourcePermissions：固定 19 个布尔能力位，序列化时全部输出。
- Grant：被授权者 + 权限集合。
- FileVersion / RecycleItem：历史版本与回收站条目，通过不透明 key 恢复。
"""

from __future__ import annotations

import dataclasses
from enum import Enum, IntEnum
from typing import Any


class ResourceType(IntEnum):
    INVALID = 0
    FILE = 1
    CONTAINER = 2
    REFERENCE = 3
    SYMLINK = 4


class UserType(IntEnum):
    INVALID = 0
    PRIMARY = 1
    SECONDARY = 2
    SERVICE = 3
    APPLICATION = 4
    GUEST = 5
    FEDERATED = 6
    LIGHTWEIGHT = 7


class GranteeType(IntEnum):
    INVALID = 0
    USER = 1
    GROUP = 2


class FilterType(IntEnum):
    """ListStorageSpaces 过滤条件类型。"""

    INVALID = 0
    PATH = 1
    ID = 2
    OWNER = 3
    SPACE_TYPE = 4


class SpaceType(str, Enum):
    HOME = "home"
    SHARE = "share"
    PROJECT = "project"


@dataclasses.dataclass(frozen=True)
class ResourceId:
    storage_id: str = ""
    opaque_id: str = ""


@dataclasses.dataclass(frozen=True)
class Reference:
    """
    文件系统条目的引用。

    :param resource_id: 不透明标识 (storage_id, opaque_id)
    :param path: 层级路径，如 "/some/path"；空串表示未提供
    """

    resource_id: ResourceId | None = None
    path: str = ""

    def __post_init__(self) -> None:
        if self.resource_id is None and not self.path:
            raise ValueError("Reference needs a resource_id or a path")


@dataclasses.dataclass(frozen=True)
class Timestamp:
    seconds: int = 0
    nanos: int = 0


# 线上字段顺序即下列声明顺序，改动会改变调用签名
PERMISSION_FIELDS: tuple[str, ...] = (
    "add_grant",
    "create_container",
    "delete",
    "get_path",
    "get_quota",
    "initiate_file_download",
    "initiate_file_upload",
    "list_grants",
    "list_container",
    "list_file_versions",
    "list_recycle",
    "move",
    "remove_grant",
    "purge_recycle",
    "restore_file_version",
    "restore_recycle_item",
    "stat",
    "update_grant",
    "deny_grant",
)


@dataclasses.dataclass(frozen=True)
class ResourcePermissions:
    """一组相互独立的能力位；未声明的均为 False。"""

    add_grant: bool = False
    create_container: bool = False
    delete: bool = False
    get_path: bool = False
    get_quota: bool = False
    initiate_file_download: bool = False
    initiate_file_upload: bool = False
    list_grants: bool = False
    list_container: bool = False
    list_file_versions: bool = False
    list_recycle: bool = False
    move: bool = False
    remove_grant: bool = False
    purge_recycle: bool = False
    restore_file_version: bool = False
    restore_recycle_item: bool = False
    stat: bool = False
    update_grant: bool = False
    deny_grant: bool = False

    @classmethod
    def all(cls) -> ResourcePermissions:
        """全部能力位为 True。"""
        return cls(**{name: True for name in PERMISSION_FIELDS})

    @classmethod
    def none(cls) -> ResourcePermissions:
        return cls()

    def granted(self) -> list[str]:
        """返回为 True 的能力名（按线上顺序）。"""
        return [name for name in PERMISSION_FIELDS if getattr(self, name)]


@dataclasses.dataclass(frozen=True)
class UserId:
    idp: str = ""
    opaque_id: str = ""
    type: UserType = UserType.INVALID


@dataclasses.dataclass(frozen=True)
class GroupId:
    idp: str = ""
    opaque_id: str = ""


@dataclasses.dataclass(frozen=True)
class Grantee:
    """被授权者：用户或用户组，二选一。"""

    user_id: UserId | None = None
    group_id: GroupId | None = None
    type: GranteeType = GranteeType.INVALID


@dataclasses.dataclass(frozen=True)
class Grant:
    grantee: Grantee
    permissions: ResourcePermissions


@dataclasses.dataclass(frozen=True)
class ArbitraryMetadata:
    metadata: dict[str, str] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class ResourceChecksum:
    type: int = 0
    sum: str = ""


@dataclasses.dataclass(frozen=True)
class Opaque:
    """不透明扩展数据；值为字节串，线上以 base64 传输。"""

    entries: dict[str, bytes] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass(frozen=True)
class ResourceInfo:
    """GetMD / ListFolder 返回的条目元数据。"""

    type: ResourceType = ResourceType.INVALID
    id: ResourceId | None = None
    checksum: ResourceChecksum | None = None
    etag: str = ""
    mime_type: str = ""
    mtime: Timestamp | None = None
    path: str = ""
    permission_set: ResourcePermissions = dataclasses.field(default_factory=ResourcePermissions)
    size: int = 0
    owner: UserId | None = None
    target: str = ""
    arbitrary_metadata: ArbitraryMetadata = dataclasses.field(default_factory=ArbitraryMetadata)

    @property
    def is_container(self) -> bool:
        return self.type == ResourceType.CONTAINER


@dataclasses.dataclass(frozen=True)
class FileVersion:
    """文件的一个历史版本；mtime 为秒级时间戳。"""

    key: str
    size: int = 0
    mtime: int = 0
    etag: str = ""
    opaque: Opaque = dataclasses.field(default_factory=Opaque)


@dataclasses.dataclass(frozen=True)
class RecycleItem:
    """回收站条目：删除时的 key、原始位置、大小与删除时间。"""

    key: str
    ref: Reference | None = None
    size: int = 0
    deletion_time: Timestamp = dataclasses.field(default_factory=Timestamp)
    type: ResourceType = ResourceType.INVALID
    opaque: Opaque = dataclasses.field(default_factory=Opaque)


@dataclasses.dataclass(frozen=True)
class Quota:
    total_bytes: int = 0
    used_bytes: int = 0


@dataclasses.dataclass(frozen=True)
class SpaceQuota:
    quota_max_bytes: int = 0
    quota_max_files: int = 0


@dataclasses.dataclass(frozen=True)
class StorageSpace:
    id: str = ""
    owner: UserId | None = None
    root: ResourceId | None = None
    name: str = ""
    quota: SpaceQuota | None = None
    space_type: str = ""
    mtime: Timestamp | None = None
    opaque: Opaque = dataclasses.field(default_factory=Opaque)


@dataclasses.dataclass(frozen=True)
class StorageSpaceFilter:
    """
    ListStorageSpaces 的一个过滤条件。

    按 type 只使用对应的一个字段：PATH→path，OWNER→owner，ID→id，SPACE_TYPE→space_type。
    """

    type: FilterType
    owner: UserId | None = None
    id: str = ""
    space_type: str = ""
    path: str = ""

    @classmethod
    def by_path(cls, path: str) -> StorageSpaceFilter:
        return cls(FilterType.PATH, path=path)

    @classmethod
    def by_owner(cls, owner: UserId) -> StorageSpaceFilter:
        return cls(FilterType.OWNER, owner=owner)

    @classmethod
    def by_id(cls, opaque_id: str) -> StorageSpaceFilter:
        return cls(FilterType.ID, id=opaque_id)

    @classmethod
    def by_space_type(cls, space_type: str) -> StorageSpaceFilter:
        return cls(FilterType.SPACE_TYPE, space_type=space_type)


@dataclasses.dataclass(frozen=True)
class CreateStorageSpaceRequest:
    owner: UserId
    type: str
    name: str
    quota: SpaceQuota | None = None
    opaque: Opaque = dataclasses.field(default_factory=Opaque)


def as_dict(value: Any) -> dict[str, Any]:
    """把模型转成普通 dict（CLI 输出 JSON 用）。"""
    return dataclasses.asdict(value)

"""Nextcloud ScienceMesh 存储驱动 Python 实现，附带可编程的模拟服务端。"""

from ncfsapi.driver import DriverConfig, StorageDriver, new, parse_config
from ncfsapi.errors import (
    CommError,
    ConfigurationError,
    DecodeError,
    RemoteStatusError,
    StorageError,
    TransportError,
    Unimplemented,
)
from ncfsapi.models import (
    ArbitraryMetadata,
    FileVersion,
    Grant,
    Grantee,
    Quota,
    RecycleItem,
    Reference,
    ResourceId,
    ResourceInfo,
    ResourcePermissions,
    StorageSpace,
    StorageSpaceFilter,
    UserId,
)
from ncfsapi.simulator import ServerState, Simulator, UnmatchedCall
from ncfsapi.transport import RequestContext

__all__ = [
    "StorageDriver",
    "DriverConfig",
    "new",
    "parse_config",
    "RequestContext",
    "Simulator",
    "ServerState",
    "UnmatchedCall",
    "StorageError",
    "ConfigurationError",
    "TransportError",
    "CommError",
    "RemoteStatusError",
    "DecodeError",
    "Unimplemented",
    "Reference",
    "ResourceId",
    "ResourceInfo",
    "ResourcePermissions",
    "Grant",
    "Grantee",
    "UserId",
    "ArbitraryMetadata",
    "FileVersion",
    "RecycleItem",
    "Quota",
    "StorageSpace",
    "StorageSpaceFilter",
]

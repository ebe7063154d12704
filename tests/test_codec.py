"""
线上编解码单元测试：编码确定性、缺省字段省略规则、解码失败的归类。
"""

from __future__ import annotations

import pytest

from ncfsapi import codec
from ncfsapi.errors import DecodeError
from ncfsapi.models import (
    PERMISSION_FIELDS,
    ArbitraryMetadata,
    FileVersion,
    Grant,
    Grantee,
    GranteeType,
    GroupId,
    Quota,
    Reference,
    ResourceId,
    ResourceInfo,
    ResourcePermissions,
    ResourceType,
    StorageSpaceFilter,
)

from tests.config import GRANT, REF, REF_JSON


# ------------------------- 编码 -------------------------


def test_reference_full() -> None:
    assert codec.encode(REF) == REF_JSON.encode()


def test_reference_omits_missing_fields() -> None:
    """缺省的 resource_id / path 不输出，既不是 null 也不是空串。"""
    assert codec.encode(Reference(path="/subdir")) == b'{"path":"/subdir"}'
    assert codec.encode(Reference(resource_id=ResourceId("s", "o"))) == b'{"resource_id":{"storage_id":"s","opaque_id":"o"}}'
    assert codec.encode(Reference(resource_id=ResourceId(opaque_id="o"), path="/x")) == (
        b'{"resource_id":{"opaque_id":"o"},"path":"/x"}'
    )


def test_reference_needs_id_or_path() -> None:
    with pytest.raises(ValueError):
        Reference()


def test_encode_is_deterministic() -> None:
    """同一参数多次编码逐字节相同；map 按键排序，与插入顺序无关。"""
    a = ArbitraryMetadata({"b": "2", "a": "1"})
    b = ArbitraryMetadata({"a": "1", "b": "2"})
    assert codec.encode(a) == codec.encode(b) == b'{"metadata":{"a":"1","b":"2"}}'
    assert codec.encode(GRANT) == codec.encode(GRANT)


def test_permissions_always_complete() -> None:
    """19 个权限位总是全部输出，包括 False。"""
    out = codec.to_wire(ResourcePermissions(stat=True))
    assert list(out) == list(PERMISSION_FIELDS)
    assert out["stat"] is True
    assert sum(out.values()) == 1


def test_grantee_group_and_type() -> None:
    grantee = Grantee(group_id=GroupId(idp="idp", opaque_id="physics"), type=GranteeType.GROUP)
    assert codec.encode(grantee) == b'{"type":2,"Id":{"GroupId":{"idp":"idp","opaque_id":"physics"}}}'


def test_md_request_keys_default_to_empty_list() -> None:
    assert codec.encode_md_request(Reference(path="/"), None) == b'{"ref":{"path":"/"},"mdKeys":[]}'


def test_list_recycle_keeps_empty_envelope_fields() -> None:
    """操作信封中的 path / key 即使为空串也输出。"""
    assert codec.encode_list_recycle("", "") == b'{"path":"","key":""}'


def test_restore_recycle_item_omits_missing_restore_ref() -> None:
    assert codec.encode_restore_recycle_item("k", "/p", None) == b'{"key":"k","path":"/p"}'


def test_space_filter_by_path() -> None:
    assert codec.encode(StorageSpaceFilter.by_path("/a")) == b'{"type":1,"Term":{"Path":"/a"}}'


def test_non_ascii_is_not_escaped() -> None:
    assert codec.encode(Reference(path="/你好")) == '{"path":"/你好"}'.encode("utf-8")


def test_unknown_type_has_no_encoding() -> None:
    with pytest.raises(TypeError):
        codec.to_wire(object())


# ------------------------- 解码 -------------------------


def test_decode_resource_info_defaults() -> None:
    """缺省字段取零值；null 与缺省等价。"""
    info = codec.decode(b'{"type":2,"path":"/d","mtime":null}', ResourceInfo)
    assert info.type is ResourceType.CONTAINER
    assert info.is_container
    assert info.mtime is None
    assert info.permission_set == ResourcePermissions.none()
    assert info.arbitrary_metadata == ArbitraryMetadata()


def test_decode_list_null_is_empty() -> None:
    assert codec.decode(b"null", Grant, many=True) == []


def test_decode_accepts_integral_float() -> None:
    assert codec.decode(b'{"totalBytes":456.0,"usedBytes":1}', Quota) == Quota(456, 1)


def test_decode_invalid_json() -> None:
    with pytest.raises(DecodeError) as exc:
        codec.decode(b"response not defined!", Quota, ep="http://x/GetQuota")
    assert exc.value.ep == "http://x/GetQuota"
    assert exc.value.response == "response not defined!"
    assert "while accessing http://x/GetQuota" in str(exc.value)


def test_decode_errors_name_the_end_point() -> None:
    """非法 UTF-8、纯文本结果与结构不符的错误信息都带上接口地址。"""
    ep = "http://x/GetHome"
    for call in (
        lambda: codec.decode(b"\xff\xfe", Quota, ep=ep),
        lambda: codec.decode_text(b"\xff", ep=ep),
        lambda: codec.decode(b'{"totalBytes":"many"}', Quota, ep=ep),
    ):
        with pytest.raises(DecodeError) as exc:
            call()
        assert exc.value.ep == ep
        assert f"while accessing {ep}" in str(exc.value)


@pytest.mark.parametrize(
    "body, target, many",
    [
        (b'{"size":true}', ResourceInfo, False),
        (b'{"size":"12"}', ResourceInfo, False),
        (b'{"size":1.5}', ResourceInfo, False),
        (b'{"type":99}', ResourceInfo, False),
        (b'{"etag":1}', ResourceInfo, False),
        (b'{"arbitrary_metadata":{"metadata":{"a":1}}}', ResourceInfo, False),
        (b'{"permission_set":{"stat":1}}', ResourceInfo, False),
        (b'[{"key":"k","opaque":{"map":{"x":{"value":"not base64!"}}}}]', FileVersion, True),
        (b'{"key":"k"}', FileVersion, True),
        (b"[1]", Grant, True),
        (b'{"a":1}', dict, False),
    ],
)
def test_decode_wrong_shape(body: bytes, target: object, many: bool) -> None:
    """结构不符一律为 DecodeError，不泄露 KeyError / TypeError。"""
    with pytest.raises(DecodeError):
        codec.decode(body, target, many=many)


def test_decode_invalid_utf8() -> None:
    with pytest.raises(DecodeError):
        codec.decode(b"\xff\xfe", Quota)
    with pytest.raises(DecodeError):
        codec.decode_text(b"\xff")


def test_decode_unknown_target() -> None:
    with pytest.raises(TypeError):
        codec.decode(b"{}", str)

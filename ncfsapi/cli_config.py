"""
CLI 本地配置：保存/读取 end_point、username、token。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def _config_dir() -> Path:
    """配置目录：~/.config/ncfsapi（所有平台统一）。"""
    return Path.home() / ".config" / "ncfsapi"


def _config_path() -> Path:
    return _config_dir() / "config.json"


def load_config() -> dict[str, Any] | None:
    """读取本地配置；不存在、无效或缺少 end_point / username 则返回 None。"""
    p = _config_path()
    if not p.exists():
        return None
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict) or "end_point" not in data or "username" not in data:
        return None
    return data


def save_config(end_point: str, username: str, token: str | None = None, mock_http: bool = False) -> None:
    """保存到本地；end_point 统一以 / 结尾。"""
    p = _config_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    data: dict[str, Any] = {"end_point": end_point.rstrip("/") + "/", "username": username}
    if token is not None:
        data["token"] = token
    if mock_http:
        data["mock_http"] = True
    p.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def clear_config() -> bool:
    """清除本地配置；存在则删除并返回 True。"""
    p = _config_path()
    if p.exists():
        p.unlink()
        return True
    return False

"""
pytest 配置与共享 fixture。

常量见 tests.config。每个测试各自创建一个模拟服务端，状态与调用日志互不影响。
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from ncfsapi.driver import DriverConfig, StorageDriver
from ncfsapi.simulator import Simulator
from ncfsapi.transport import RequestContext

from tests.config import EINSTEIN, END_POINT, TESTER


@pytest.fixture
def simulator() -> Simulator:
    """使用默认转移表的模拟服务端，初始状态 EMPTY。"""
    return Simulator()


@pytest.fixture
def driver(simulator: Simulator) -> Iterator[StorageDriver]:
    """挂接 simulator 的驱动。"""
    d = StorageDriver(DriverConfig(end_point=END_POINT), client=simulator.http_client())
    yield d
    d.close()


@pytest.fixture
def ctx() -> RequestContext:
    """用户 tester 的调用上下文。"""
    return RequestContext(username=TESTER)


@pytest.fixture
def einstein() -> RequestContext:
    """用户 einstein 的调用上下文。"""
    return RequestContext(username=EINSTEIN)

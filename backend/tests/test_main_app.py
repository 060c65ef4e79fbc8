"""
主应用端点单元测试
覆盖：API 信息、健康检查、生命周期
"""

import pytest
from httpx import AsyncClient

from core.events import Events, event_bus
from main import app, lifespan


@pytest.mark.asyncio
class TestHealthEndpoint:
    """健康检查端点测试"""

    async def test_health_check(self, client: AsyncClient):
        """测试健康检查端点"""
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["active_sessions"] == 0
        assert data["uptime_seconds"] >= 0


@pytest.mark.asyncio
class TestRootEndpoints:
    """根路径端点测试"""

    async def test_api_info(self, client: AsyncClient):
        """测试 API 信息端点"""
        response = await client.get("/api")
        assert response.status_code == 200

        data = response.json()
        assert "name" in data
        assert "version" in data
        assert data["health"] == "/health"


@pytest.mark.asyncio
class TestLifespan:
    """应用生命周期测试"""

    async def test_startup_and_shutdown(self, recorded_events):
        """测试启动创建后端客户端并注册事件处理器，关闭时释放"""
        async with lifespan(app):
            assert app.state.lms_http is not None
            assert event_bus._handlers[Events.EXAM_UPDATED]
            assert recorded_events.of(Events.SYSTEM_STARTUP)

        assert app.state.lms_http is None
        assert recorded_events.of(Events.SYSTEM_SHUTDOWN)
        assert event_bus._handlers == {}

"""
渠道基类模块 - 定义所有前端渠道的统一接口。

渠道是消息平台与 relaybot 核心之间的适配层，负责：
1. 把平台的斜杠命令交互转换为 InboundCommand 发布到消息总线
2. 接收 Reply，并按 audience 决定以"仅发起者可见"还是"所有人可见"的方式发送

【核心抽象方法】
- start(): 启动渠道
- stop(): 停止渠道，释放资源
- send(): 发送一条出站回复

【公共能力】
- is_allowed(): 基于白名单的权限控制
- _handle_command(): 权限检查 → 构造 InboundCommand → 发布到总线
"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from relaybot.bus.events import CommandKind, InboundCommand, Reply
from relaybot.bus.queue import MessageBus
from relaybot.session.manager import ConversationKey


class BaseChannel(ABC):
    """
    渠道抽象基类。

    属性:
        name: 渠道标识名，用于出站回复路由
        config: 渠道特定的配置对象
        bus: 消息总线实例
        _running: 渠道运行状态标志
    """

    name: str = "base"

    def __init__(self, config: Any, bus: MessageBus):
        self.config = config
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """启动渠道并开始接收命令。"""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """停止渠道并清理资源。"""
        pass

    @abstractmethod
    async def send(self, reply: Reply) -> None:
        """
        发送一条出站回复。

        reply.ephemeral 为 True 时应只让发起者看到（如 Discord 的 flags=64）。
        """
        pass

    def is_allowed(self, user_id: str) -> bool:
        """
        检查用户是否有权限使用机器人。

        白名单为空时允许所有人；否则只允许名单中的用户。
        """
        allow_list = getattr(self.config, "allow_from", [])
        if not allow_list:
            return True
        return str(user_id) in allow_list

    async def _handle_command(
        self,
        user_id: str,
        channel_id: str,
        kind: CommandKind,
        text: str | None = None,
        user_name: str = "",
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """
        处理来自平台的一次命令交互（模板方法）。

        参数:
            user_id: 发起者 ID
            channel_id: 所在频道 ID
            kind: 命令种类
            text: 命令参数文本
            user_name: 发起者显示名
            metadata: 渠道特定元数据

        返回:
            True 表示已发布到总线，False 表示因权限被拒绝
        """
        if not self.is_allowed(user_id):
            logger.warning(
                f"Access denied for user {user_id} on channel {self.name}. "
                f"Add them to allowFrom list in config to grant access."
            )
            return False

        command = InboundCommand(
            key=ConversationKey(user_id=str(user_id), channel_id=str(channel_id)),
            kind=kind,
            text=text,
            channel=self.name,
            user_name=user_name,
            metadata=metadata or {},
        )
        await self.bus.publish_inbound(command)
        return True

    @property
    def is_running(self) -> bool:
        return self._running

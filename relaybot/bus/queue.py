"""
异步消息队列模块 - 消息总线的核心实现。

本模块实现了 MessageBus 类，基于 asyncio.Queue 的生产者-消费者模式：

入站流程（用户 → 核心）：
  渠道 → publish_inbound() → inbound 队列 → consume_inbound() → CommandDispatcher.run()

出站流程（核心 → 用户）：
  CommandDispatcher → publish_outbound() → outbound 队列 → dispatch_outbound() → 渠道回调

出站回复采用"发布-订阅"模式：每个渠道通过 subscribe_outbound() 注册回调，
dispatch_outbound() 后台任务按 Reply.channel 路由到对应回调。
"""

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from relaybot.bus.events import InboundCommand, Reply


class MessageBus:
    """
    异步消息总线 - 解耦渠道与命令分发器。

    属性:
        inbound: 入站命令队列（渠道 → 分发器）
        outbound: 出站回复队列（分发器 → 渠道）
        _outbound_subscribers: 出站订阅者字典 {渠道名: [回调函数列表]}
        _running: 分发器运行状态标志
    """

    def __init__(self):
        self.inbound: asyncio.Queue[InboundCommand] = asyncio.Queue()
        self.outbound: asyncio.Queue[Reply] = asyncio.Queue()
        self._outbound_subscribers: dict[str, list[Callable[[Reply], Awaitable[None]]]] = {}
        self._running = False

    async def publish_inbound(self, command: InboundCommand) -> None:
        """发布入站命令（渠道 → 分发器）。"""
        await self.inbound.put(command)

    async def consume_inbound(self) -> InboundCommand:
        """消费下一条入站命令（队列为空时异步等待）。"""
        return await self.inbound.get()

    async def publish_outbound(self, reply: Reply) -> None:
        """发布出站回复（分发器 → 渠道）。"""
        await self.outbound.put(reply)

    async def consume_outbound(self) -> Reply:
        """消费下一条出站回复。一般通过 dispatch_outbound() 自动消费。"""
        return await self.outbound.get()

    def subscribe_outbound(
        self,
        channel: str,
        callback: Callable[[Reply], Awaitable[None]]
    ) -> None:
        """
        订阅指定渠道的出站回复。

        参数:
            channel: 渠道名称（如 'console'）
            callback: 异步回调函数，接收 Reply 参数
        """
        self._outbound_subscribers.setdefault(channel, []).append(callback)

    async def dispatch_outbound(self) -> None:
        """
        出站回复分发器（后台常驻任务）。

        使用 1 秒超时的 wait_for 轮询，确保 stop() 后能及时退出。
        单个回调的异常只记录日志，不中断分发循环。
        """
        self._running = True
        while self._running:
            try:
                reply = await asyncio.wait_for(self.outbound.get(), timeout=1.0)
                subscribers = self._outbound_subscribers.get(reply.channel, [])
                if not subscribers:
                    logger.warning(f"No subscriber for channel '{reply.channel}', dropping reply to {reply.key}")
                for callback in subscribers:
                    try:
                        await callback(reply)
                    except Exception as e:
                        logger.error(f"Error dispatching to {reply.channel}: {e}")
            except asyncio.TimeoutError:
                continue

    def stop(self) -> None:
        """停止出站分发器，循环会在下次超时检查时退出。"""
        self._running = False

    @property
    def inbound_size(self) -> int:
        return self.inbound.qsize()

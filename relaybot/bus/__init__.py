"""
消息总线模块 - 渠道与命令分发器之间的解耦通信。

消息流向：
  用户交互 → 渠道(Channel) → InboundCommand → 消息总线 → CommandDispatcher
  处理结果 → Reply → 消息总线 → 渠道(Channel) → 用户（按 audience 决定是否仅发起者可见）
"""

from relaybot.bus.events import Audience, CommandKind, InboundCommand, Reply
from relaybot.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundCommand", "Reply", "CommandKind", "Audience"]

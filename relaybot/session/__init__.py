"""
会话管理模块 - 管理每个对话的历史、可见性模式与串行化访问。

本模块是 relaybot 的核心状态层：
- SessionStore 按 ConversationKey（用户 × 频道）懒创建 Session，
  并保证同一对话的命令串行执行、不同对话互不阻塞
- ContextWindow 决定每次请求发给补全服务的历史子集
- IdleSweeper 定期回收长时间空闲的会话

会话状态只保存在内存中。
"""

from relaybot.session.manager import (
    ConversationKey,
    Role,
    Session,
    SessionStore,
    SessionUsage,
    Turn,
    Visibility,
)
from relaybot.session.sweeper import IdleSweeper
from relaybot.session.window import ContextWindow

__all__ = [
    "ConversationKey",
    "Role",
    "Session",
    "SessionStore",
    "SessionUsage",
    "Turn",
    "Visibility",
    "ContextWindow",
    "IdleSweeper",
]

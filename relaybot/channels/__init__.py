"""
渠道模块 - 消息平台前端适配层。

- base.py    : BaseChannel 抽象基类
- console.py : 本地终端渠道（relaybot chat 命令使用）
"""

from relaybot.channels.base import BaseChannel
from relaybot.channels.console import ConsoleChannel, parse_command

__all__ = ["BaseChannel", "ConsoleChannel", "parse_command"]

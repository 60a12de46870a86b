"""
命令分发模块 - 把斜杠命令映射为会话操作与回复投递指令。
"""

from relaybot.dispatch.dispatcher import CommandDispatcher
from relaybot.dispatch.personas import Persona, PersonaRegistry

__all__ = ["CommandDispatcher", "Persona", "PersonaRegistry"]

"""
人格注册表 - 管理可选的系统提示词（persona）。

每个会话可以通过 /personality 命令选择一个人格，
之后该会话的每次补全请求都会以该人格的提示词作为 system 消息开头。
未选择人格的会话使用默认人格。
"""

from dataclasses import dataclass
from typing import Iterable

DEFAULT_PERSONA_NAME = "default"
DEFAULT_PERSONA_PROMPT = "You are a helpful assistant."


@dataclass(frozen=True)
class Persona:
    """一个命名的系统提示词。"""
    name: str
    prompt: str
    description: str = ""


class PersonaRegistry:
    """
    人格注册表。

    名称查找不区分大小写。默认人格不存在于注册表中时，
    prompt_for() 会回退到内置的 "You are a helpful assistant."。
    """

    def __init__(self, personas: Iterable[Persona] = (), default: str = DEFAULT_PERSONA_NAME):
        self._personas: dict[str, Persona] = {}
        for persona in personas:
            self.add(persona)
        self.default = default

    def add(self, persona: Persona) -> None:
        self._personas[persona.name.lower()] = persona

    def get(self, name: str) -> Persona | None:
        return self._personas.get(name.strip().lower())

    def names(self) -> list[str]:
        return [p.name for p in self._personas.values()]

    def prompt_for(self, name: str | None) -> str:
        """
        获取某个会话应使用的系统提示词。

        参数:
            name: 会话选中的人格名称，None 表示使用默认人格

        返回:
            提示词文本
        """
        persona = self.get(name) if name else None
        if persona is None:
            persona = self.get(self.default)
        return persona.prompt if persona else DEFAULT_PERSONA_PROMPT

    def __len__(self) -> int:
        return len(self._personas)

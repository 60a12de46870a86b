"""
补全服务客户端模块（providers 包）。

本模块是 relaybot 与大语言模型补全服务之间的桥梁层：
- base.py             : ChatClient 抽象基类与 Completion 结果结构
- litellm_provider.py : 基于 LiteLLM 的 ChatClient 实现
"""

from relaybot.providers.base import ChatClient, Completion
from relaybot.providers.litellm_provider import LiteLLMClient

__all__ = ["ChatClient", "Completion", "LiteLLMClient"]

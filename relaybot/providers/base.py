"""
补全服务客户端基类定义模块。

本模块定义了 relaybot 与大语言模型补全服务之间的能力接口：
- Completion : 一次成功补全的统一结果（回复文本、token 用量、实际模型名）
- ChatClient : 抽象基类，所有补全服务实现都必须实现 complete()

架构角色：
  CommandDispatcher → ContextWindow.select() → ChatClient.complete() → 补全服务 → Completion

失败约定：
  complete() 失败时抛出 UpstreamError，kind 取值为
  timeout / rate_limited / invalid_response / transport 之一。
  会话层对所有 kind 一视同仁，kind 只用于用户可见的失败提示。

类比 Java：
  - ChatClient 相当于一个 interface
  - Completion 相当于一个不可变的 DTO
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

from relaybot.session.manager import Turn


@dataclass
class Completion:
    """
    一次成功补全的结果。

    属性：
        text: 助手回复文本
        usage: token 用量（prompt_tokens, completion_tokens, total_tokens）
        model: 补全服务实际使用的模型名
    """
    text: str
    usage: dict[str, int] = field(default_factory=dict)
    model: str | None = None


class ChatClient(ABC):
    """
    补全服务客户端抽象基类。

    当前项目中的实现是 LiteLLMClient（在 litellm_provider.py 中）。
    测试中使用脚本化的假客户端实现同一接口。
    """

    @abstractmethod
    async def complete(
        self,
        turns: Sequence[Turn],
        system_prompt: str | None = None,
        user: str | None = None,
    ) -> Completion:
        """
        发送一组有序消息并获取单条回复。

        参数：
            turns: 已经过上下文窗口裁剪的有序消息
            system_prompt: 可选的人格提示词，作为第一条 system 消息发送
            user: 发起用户标识（部分服务用于滥用监控）

        返回：
            Completion

        异常：
            UpstreamError: 超时、限流、响应格式错误或传输错误
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """获取该客户端使用的模型名称。"""
        pass

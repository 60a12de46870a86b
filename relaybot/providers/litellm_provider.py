"""
LiteLLM 客户端实现模块 —— 补全服务的统一调用层。

本模块是 ChatClient 抽象基类的实现，通过 LiteLLM 开源库对接
OpenAI、Anthropic、OpenRouter 等补全服务，relaybot 自身不实现任何传输协议。

与 Agent 场景不同，这里没有工具调用：每次请求就是
"人格提示词 + 窗口内历史"，期望拿回一条文本回复。

错误映射（LiteLLM 异常 → UpstreamKind）：
  Timeout / asyncio.TimeoutError          → timeout
  RateLimitError                          → rate_limited
  APIConnectionError / 其它 APIError 等   → transport
  无 choices、无 content 的响应           → invalid_response

数据流：
  CommandDispatcher → LiteLLMClient.complete() → ContextWindow.build_messages() → acompletion()
                                                                                        ↓
  CommandDispatcher ← Completion ← _parse_response() ← API Response ←──────────────────┘
"""

import asyncio
from typing import Any, Sequence

import litellm
from litellm import acompletion
from loguru import logger

from relaybot.errors import UpstreamError, UpstreamKind
from relaybot.providers.base import ChatClient, Completion
from relaybot.session.manager import Turn
from relaybot.session.window import ContextWindow


class LiteLLMClient(ChatClient):
    """
    基于 LiteLLM 的补全服务客户端。

    构造参数：
        model: 模型名称（LiteLLM 格式，如 "openai/gpt-3.5-turbo"）
        api_key: API 密钥
        api_base: 自定义 API 基础 URL（用于代理/网关/本地部署）
        max_tokens: 单次回复的最大 token 数
        temperature: 采样温度
        request_timeout: 单次请求超时（秒）
        extra_headers: 额外的 HTTP 请求头
    """

    def __init__(
        self,
        model: str = "openai/gpt-3.5-turbo",
        api_key: str | None = None,
        api_base: str | None = None,
        max_tokens: int = 300,
        temperature: float = 0.5,
        request_timeout: float = 60.0,
        extra_headers: dict[str, str] | None = None,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.request_timeout = request_timeout
        self.extra_headers = extra_headers or {}

        # 禁用 LiteLLM 的调试日志输出（默认很啰嗦）
        litellm.suppress_debug_info = True
        # 自动丢弃服务商不支持的参数（避免因多余参数导致请求失败）
        litellm.drop_params = True

    def _build_kwargs(self, messages: list[dict[str, Any]], user: str | None) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "timeout": self.request_timeout,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers
        if user:
            kwargs["user"] = user
        return kwargs

    async def complete(
        self,
        turns: Sequence[Turn],
        system_prompt: str | None = None,
        user: str | None = None,
    ) -> Completion:
        """
        发送补全请求（核心方法）。

        参数：
            turns: 窗口内的有序消息
            system_prompt: 人格提示词
            user: 发起用户标识

        返回：
            Completion

        异常：
            UpstreamError: 见模块说明中的错误映射
        """
        messages = ContextWindow.build_messages(turns, system_prompt)
        kwargs = self._build_kwargs(messages, user)

        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            raise self._classify(e) from e

        return self._parse_response(response)

    @staticmethod
    def _classify(error: Exception) -> UpstreamError:
        """把 LiteLLM / asyncio 异常映射为 UpstreamError。"""
        # litellm.Timeout 继承自 APIConnectionError，必须先判断
        if isinstance(error, (litellm.Timeout, asyncio.TimeoutError)):
            kind = UpstreamKind.TIMEOUT
        elif isinstance(error, litellm.RateLimitError):
            kind = UpstreamKind.RATE_LIMITED
        else:
            kind = UpstreamKind.TRANSPORT
        logger.debug(f"LiteLLM call failed ({kind.value}): {type(error).__name__}: {error}")
        return UpstreamError(kind, str(error) or type(error).__name__)

    def _parse_response(self, response: Any) -> Completion:
        """
        将 LiteLLM 的原始响应解析为 Completion。

        响应格式遵循 OpenAI 规范：response.choices[0].message.content
        """
        choices = getattr(response, "choices", None)
        if not choices:
            raise UpstreamError(UpstreamKind.INVALID_RESPONSE, "Response contained no choices")

        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) if message is not None else None
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError(UpstreamKind.INVALID_RESPONSE, "Response contained no message content")

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return Completion(
            text=content,
            usage=usage,
            model=getattr(response, "model", None) or self.model,
        )

    def get_default_model(self) -> str:
        return self.model

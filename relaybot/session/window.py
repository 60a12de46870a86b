"""
上下文窗口策略 - 决定每次请求发给补全服务的历史子集。

策略（近似而非精确的 token 计算）：
1. 只保留最近 max_turns 条消息，保持原始顺序（滑动窗口）
2. 任何一条消息超过 max_turn_chars 时，从开头截断、保留尾部，
   因此最近一条（用户当前的请求）永远不会被丢弃，早先的超长消息也不会原样重发
3. 可选的 max_total_chars：总字符数超限时从最旧的消息开始丢弃，最近一条始终保留

字符数是一种保守的长度启发式，足以让请求远离补全服务的输入上限。
"""

from dataclasses import replace
from typing import Any, Sequence

from loguru import logger

from relaybot.session.manager import Turn


class ContextWindow:
    """
    上下文窗口策略。

    属性:
        max_turns: 窗口内最多保留的消息条数
        max_turn_chars: 单条消息的字符预算
        max_total_chars: 整个窗口的字符预算，None 表示不限制
    """

    def __init__(
        self,
        max_turns: int = 20,
        max_turn_chars: int = 4000,
        max_total_chars: int | None = None,
    ):
        if max_turns < 1:
            raise ValueError(f"max_turns must be >= 1, got {max_turns}")
        if max_turn_chars < 1:
            raise ValueError(f"max_turn_chars must be >= 1, got {max_turn_chars}")
        if max_total_chars is not None and max_total_chars < 1:
            raise ValueError(f"max_total_chars must be >= 1, got {max_total_chars}")
        self.max_turns = max_turns
        self.max_turn_chars = max_turn_chars
        self.max_total_chars = max_total_chars

    def select(self, history: Sequence[Turn]) -> list[Turn]:
        """
        从历史中选出本次请求要发送的消息。

        参数:
            history: 会话的完整历史（按对话顺序）

        返回:
            裁剪后的消息列表，长度不超过 max_turns，顺序与原历史一致
        """
        if not history:
            return []

        window = list(history[-self.max_turns:])

        # 过长的消息保留尾部而不是整条丢弃；较早的消息同样受单条预算约束
        for i, turn in enumerate(window):
            if len(turn.text) > self.max_turn_chars:
                logger.debug(
                    f"Truncating turn #{turn.sequence} from {len(turn.text)} "
                    f"to {self.max_turn_chars} chars"
                )
                window[i] = replace(turn, text=turn.text[-self.max_turn_chars:])

        if self.max_total_chars is not None:
            total = sum(len(t.text) for t in window)
            while len(window) > 1 and total > self.max_total_chars:
                total -= len(window.pop(0).text)

        return window

    @staticmethod
    def build_messages(
        turns: Sequence[Turn],
        system_prompt: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        组装补全服务需要的消息列表。

        有人格提示词时放在第一条 system 消息中，其后是窗口内的对话消息。
        """
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.extend(t.to_message() for t in turns)
        return messages

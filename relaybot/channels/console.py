"""
控制台渠道 - 在本地终端里模拟斜杠命令交互。

输入行的解析规则：
- "/reset"、"/private"、"/public"、"/help" → 对应命令
- "/personality <name>" → 选择人格
- "/chat <text>" 或不以 "/" 开头的文本 → chat
- 其它 "/xxx" → help

回复通过 rich 渲染；仅发起者可见的回复带有 "(only you)" 标记，
对应消息平台上的临时（ephemeral）消息。chat 回复下方附一行模型与用量脚注。
"""

import asyncio

from rich.console import Console
from rich.markdown import Markdown
from rich.text import Text

from relaybot import __logo__
from relaybot.bus.events import CommandKind, Reply
from relaybot.bus.queue import MessageBus
from relaybot.channels.base import BaseChannel
from relaybot.config.schema import ConsoleConfig

_SLASH_COMMANDS = {kind.value: kind for kind in CommandKind}


def parse_command(line: str) -> tuple[CommandKind, str | None]:
    """
    把一行控制台输入解析为 (命令种类, 参数文本)。

    参数:
        line: 用户输入

    返回:
        (CommandKind, text) 元组
    """
    stripped = line.strip()
    if not stripped.startswith("/"):
        return CommandKind.CHAT, stripped

    name, _, rest = stripped[1:].partition(" ")
    kind = _SLASH_COMMANDS.get(name.lower())
    if kind is None:
        return CommandKind.HELP, None
    return kind, rest.strip() or None


def _usage_footer(reply: Reply) -> str:
    """chat 回复的用量脚注，如 "gpt-3.5-turbo · 42 tokens · 3 chats, 120 tokens this session"。"""
    meta = reply.metadata
    if not reply.ok or "model" not in meta:
        return ""
    parts = [str(meta["model"] or "unknown model")]
    if meta.get("tokens") is not None:
        parts.append(f"{meta['tokens']} tokens")
    parts.append(f"{meta.get('chat_count', 0)} chats, {meta.get('session_tokens', 0)} tokens this session")
    return " · ".join(parts)


class ConsoleChannel(BaseChannel):
    """
    控制台渠道实现。

    submit() 发布一条命令后等待本渠道收到对应回复，
    让交互式循环保持"一问一答"的节奏；回复本身仍经由消息总线路由。
    """

    name = "console"

    def __init__(
        self,
        config: ConsoleConfig,
        bus: MessageBus,
        console: Console | None = None,
        render_markdown: bool = True,
    ):
        super().__init__(config, bus)
        self.config: ConsoleConfig = config
        self.console = console or Console()
        self.render_markdown = render_markdown
        self._replies: asyncio.Queue[Reply] = asyncio.Queue()

    async def start(self) -> None:
        self.bus.subscribe_outbound(self.name, self.send)
        self._running = True

    async def stop(self) -> None:
        self._running = False

    async def send(self, reply: Reply) -> None:
        """渲染一条回复，并交给等待中的 submit()。"""
        body = Markdown(reply.content) if self.render_markdown and reply.ok else Text(reply.content)
        tag = " [dim](only you)[/dim]" if reply.ephemeral else ""
        style = "cyan" if reply.ok else "red"

        self.console.print()
        self.console.print(f"[{style}]{__logo__} relaybot[/{style}]{tag}")
        self.console.print(body)
        footer = _usage_footer(reply)
        if footer:
            self.console.print(Text(footer, style="dim"))
        self.console.print()
        await self._replies.put(reply)

    async def submit(self, line: str) -> Reply | None:
        """
        提交一行输入并等待回复。

        返回:
            本渠道收到的回复；用户不在白名单中时返回 None
        """
        kind, text = parse_command(line)
        published = await self._handle_command(
            user_id=self.config.user_id,
            channel_id=self.config.channel_id,
            kind=kind,
            text=text,
            user_name=self.config.user_id,
        )
        if not published:
            return None
        return await self._replies.get()

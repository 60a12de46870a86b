"""
CLI 命令模块 - relaybot 的所有命令行命令定义。

本模块使用 Typer 框架定义 relaybot 的 CLI：
- onboard：初始化默认配置文件
- chat：在本地终端里与中继机器人交互（单条消息或交互式对话）
- status：查看配置与会话参数

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出
- prompt_toolkit：交互式输入（历史记录、多行粘贴）
"""

import asyncio
import os
import select
import signal
import sys

import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.table import Table

from relaybot import __logo__, __version__

app = typer.Typer(
    name="relaybot",
    help=f"{__logo__} relaybot - Slash-command chat relay",
    no_args_is_help=True,
)

console = Console()
EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}

# ---------------------------------------------------------------------------
# CLI 输入：使用 prompt_toolkit 实现编辑、粘贴和历史记录
# ---------------------------------------------------------------------------

_PROMPT_SESSION: PromptSession | None = None
_SAVED_TERM_ATTRS = None


def _flush_pending_tty_input() -> None:
    """清除终端中未读的按键输入（处理请求期间用户多按的键）。"""
    try:
        fd = sys.stdin.fileno()
        if not os.isatty(fd):
            return
    except Exception:
        return

    try:
        import termios
        termios.tcflush(fd, termios.TCIFLUSH)
        return
    except Exception:
        pass

    try:
        while True:
            ready, _, _ = select.select([fd], [], [], 0)
            if not ready:
                break
            if not os.read(fd, 4096):
                break
    except Exception:
        return


def _restore_terminal() -> None:
    """恢复终端到原始状态（prompt_toolkit 会修改终端属性）。"""
    if _SAVED_TERM_ATTRS is None:
        return
    try:
        import termios
        termios.tcsetattr(sys.stdin.fileno(), termios.TCSADRAIN, _SAVED_TERM_ATTRS)
    except Exception:
        pass


def _init_prompt_session() -> None:
    """创建 prompt_toolkit 会话，历史记录保存在 ~/.relaybot/history/cli_history。"""
    global _PROMPT_SESSION, _SAVED_TERM_ATTRS

    try:
        import termios
        _SAVED_TERM_ATTRS = termios.tcgetattr(sys.stdin.fileno())
    except Exception:
        pass

    from relaybot.config.loader import get_data_dir
    from relaybot.utils.helpers import ensure_dir

    history_file = ensure_dir(get_data_dir() / "history") / "cli_history"

    _PROMPT_SESSION = PromptSession(
        history=FileHistory(str(history_file)),
        enable_open_in_editor=False,
        multiline=False,
    )


def _is_exit_command(command: str) -> bool:
    return command.lower() in EXIT_COMMANDS


async def _read_interactive_input_async() -> str:
    """使用 prompt_toolkit 异步读取一行输入。"""
    if _PROMPT_SESSION is None:
        raise RuntimeError("Call _init_prompt_session() first")
    try:
        with patch_stdout():
            return await _PROMPT_SESSION.prompt_async(
                HTML("<b fg='ansiblue'>You:</b> "),
            )
    except EOFError as exc:
        raise KeyboardInterrupt from exc


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} relaybot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """relaybot CLI 根命令回调。处理全局选项（如 --version）。"""
    pass


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    初始化 relaybot 配置。

    在 ~/.relaybot/ 下创建默认配置文件 config.json，已存在时询问是否覆盖。
    """
    from relaybot.config.loader import get_config_path, save_config
    from relaybot.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} relaybot is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your API key to [cyan]~/.relaybot/config.json[/cyan] under provider")
    console.print("  2. Chat: [cyan]relaybot chat -m \"Hello!\"[/cyan]")


# ============================================================================
# Wiring
# ============================================================================


def _make_client(config):
    """根据配置创建 LiteLLM 补全客户端。"""
    from relaybot.providers.litellm_provider import LiteLLMClient

    p = config.provider
    if not p.api_key:
        console.print("[yellow]No API key in config; relying on the provider's environment variables.[/yellow]")
    return LiteLLMClient(
        model=p.model,
        api_key=p.api_key or None,
        api_base=p.api_base,
        max_tokens=p.max_tokens,
        temperature=p.temperature,
        request_timeout=p.request_timeout,
        extra_headers=p.extra_headers,
    )


def _make_dispatcher(config, bus):
    """按配置组装会话存储、上下文窗口、人格注册表与命令分发器。"""
    from relaybot.dispatch.dispatcher import CommandDispatcher
    from relaybot.dispatch.personas import PersonaRegistry
    from relaybot.session.manager import SessionStore
    from relaybot.session.window import ContextWindow

    s = config.session
    store = SessionStore(lock_timeout=s.lock_timeout)
    window = ContextWindow(
        max_turns=s.max_turns,
        max_turn_chars=s.max_turn_chars,
        max_total_chars=s.max_total_chars,
    )
    personas = PersonaRegistry(config.persona_list(), default=config.default_persona)
    return CommandDispatcher(
        store=store,
        client=_make_client(config),
        window=window,
        personas=personas,
        bus=bus,
    )


# ============================================================================
# Chat
# ============================================================================


@app.command()
def chat(
    message: str = typer.Option(None, "--message", "-m", help="Send a single line and exit"),
    user: str = typer.Option(None, "--user", "-u", help="User ID for the conversation key"),
    channel: str = typer.Option(None, "--channel", "-c", help="Channel ID for the conversation key"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render replies as Markdown"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show relaybot runtime logs"),
):
    """
    在本地终端里与 relaybot 交互。

    输入以 / 开头时按斜杠命令处理（/reset、/private、/public、/personality <name>、/help），
    其它文本作为 /chat 发送。命令经由消息总线 → 命令分发器 → 控制台渠道完成一问一答。
    """
    from loguru import logger

    from relaybot.bus.queue import MessageBus
    from relaybot.channels.console import ConsoleChannel
    from relaybot.config.loader import load_config
    from relaybot.session.sweeper import IdleSweeper

    if logs:
        logger.enable("relaybot")
    else:
        logger.disable("relaybot")

    config = load_config()
    if user:
        config.channels.console.user_id = user
    if channel:
        config.channels.console.channel_id = channel

    bus = MessageBus()
    dispatcher = _make_dispatcher(config, bus)
    console_channel = ConsoleChannel(config.channels.console, bus, console=console, render_markdown=markdown)
    sweeper = IdleSweeper(dispatcher.store, config.session.idle_timeout, config.session.sweep_interval)

    def _thinking_ctx():
        if logs:
            from contextlib import nullcontext
            return nullcontext()
        return console.status("[dim]relaybot is thinking...[/dim]", spinner="dots")

    async def run(lines):
        await console_channel.start()
        await sweeper.start()
        background = [
            asyncio.create_task(dispatcher.run()),
            asyncio.create_task(bus.dispatch_outbound()),
        ]
        try:
            await lines()
        finally:
            dispatcher.stop()
            await dispatcher.drain()
            bus.stop()
            sweeper.stop()
            await console_channel.stop()
            await asyncio.gather(*background, return_exceptions=True)

    if message:
        async def run_once():
            with _thinking_ctx():
                await console_channel.submit(message)

        asyncio.run(run(run_once))
        return

    _init_prompt_session()
    console.print(f"{__logo__} Interactive mode (type [bold]/help[/bold] for commands, [bold]exit[/bold] or [bold]Ctrl+C[/bold] to quit)\n")

    def _exit_on_sigint(signum, frame):
        _restore_terminal()
        console.print("\nGoodbye!")
        os._exit(0)

    signal.signal(signal.SIGINT, _exit_on_sigint)

    async def run_interactive():
        while True:
            try:
                _flush_pending_tty_input()
                user_input = await _read_interactive_input_async()
                command = user_input.strip()
                if not command:
                    continue
                if _is_exit_command(command):
                    _restore_terminal()
                    console.print("\nGoodbye!")
                    break

                with _thinking_ctx():
                    reply = await console_channel.submit(command)
                if reply is None:
                    console.print("[red]You are not allowed to use this bot.[/red]")
            except (KeyboardInterrupt, EOFError):
                _restore_terminal()
                console.print("\nGoodbye!")
                break

    asyncio.run(run(run_interactive))


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """
    显示 relaybot 状态：配置文件、模型、API Key、上下文窗口参数与人格列表。
    """
    from relaybot.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} relaybot Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Model: {config.provider.model}")
    console.print(f"API key: {'[green]✓[/green]' if config.provider.api_key else '[dim]not set[/dim]'}")

    s = config.session
    console.print(
        f"Window: {s.max_turns} turns, {s.max_turn_chars} chars/turn"
        + (f", {s.max_total_chars} chars total" if s.max_total_chars else "")
    )
    console.print(f"Lock timeout: {s.lock_timeout if s.lock_timeout is not None else 'none'}")
    console.print(f"Idle eviction: {f'after {s.idle_timeout}s' if s.idle_timeout else 'disabled'}")

    table = Table(title="Personas")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Default")
    for p in config.personas:
        table.add_row(p.name, p.description, "✓" if p.name.lower() == config.default_persona.lower() else "")
    console.print(table)


if __name__ == "__main__":
    app()

"""
命令分发器模块 —— relaybot 的命令状态机。

本模块把一条入站命令（CommandKind + ConversationKey）映射为对 SessionStore 的操作，
并给出回复的投递范围：

  命令          效果                                          回复投递范围
  chat(text)    追加 user 消息 → 窗口裁剪 → 补全 → 追加 assistant  按会话可见性：private 仅发起者，public 所有人
  reset         清空历史                                      仅发起者
  private       可见性设为 PRIVATE                            仅发起者
  public        可见性设为 PUBLIC                             仅发起者
  personality   选择人格                                      仅发起者
  help          列出命令（不访问会话）                          仅发起者

【chat 失败策略】
补全失败时保留已追加的 user 消息、不追加 assistant 消息。
用户重试时无需重新输入，上一条消息会作为上下文一起发送。不做自动重试或回滚。

成功的 chat 回复在 metadata 中附带 model、tokens（本次用量）、
session_tokens 与 chat_count（会话累计），由渠道决定是否展示。

【取消语义】
chat 的"加锁 → 追加 → 补全 → 追加"整体运行在独立任务中，
调用方通过 asyncio.shield 等待：即使调用方被取消（超时、断开），
进行中的补全与会话修改也会完整执行，不会出现半条写入。

【Java 开发者类比】
- CommandDispatcher 类似于 Spring MVC 的 DispatcherServlet + 各个 Controller 方法
- run() 类似于消息监听器（@KafkaListener），每条消息交给线程池中的一个任务处理
"""

import asyncio
from dataclasses import replace
from typing import Awaitable, Callable

from loguru import logger

from relaybot.bus.events import Audience, CommandKind, InboundCommand, Reply
from relaybot.bus.queue import MessageBus
from relaybot.dispatch.personas import PersonaRegistry
from relaybot.errors import InputError, SessionBusyError, UpstreamError, UpstreamKind
from relaybot.providers.base import ChatClient, Completion
from relaybot.session.manager import Role, Session, SessionStore, SessionUsage, Visibility
from relaybot.session.window import ContextWindow
from relaybot.utils.helpers import truncate_string

HELP_TEXT = (
    "Available commands:\n"
    "/chat <message> - Talk to the AI\n"
    "/reset - Reset the chat history\n"
    "/private - Only you will see the AI's replies\n"
    "/public - Everyone in the channel will see the AI's replies\n"
    "/personality <name> - Set the AI personality\n"
    "/help - Show available commands"
)

BUSY_TEXT = "I'm still working on your previous message, please try again in a moment."


class CommandDispatcher:
    """
    命令分发器。

    核心属性：
    - store: 会话存储，提供按对话串行化的独占访问
    - client: 补全服务客户端
    - window: 上下文窗口策略
    - personas: 人格注册表
    - bus: 可选的消息总线（run() 模式下使用）
    """

    def __init__(
        self,
        store: SessionStore,
        client: ChatClient,
        window: ContextWindow | None = None,
        personas: PersonaRegistry | None = None,
        bus: MessageBus | None = None,
    ):
        self.store = store
        self.client = client
        self.window = window or ContextWindow()
        self.personas = personas or PersonaRegistry()
        self.bus = bus

        self._handlers: dict[CommandKind, Callable[[InboundCommand], Awaitable[Reply]]] = {
            CommandKind.CHAT: self._chat,
            CommandKind.RESET: self._reset,
            CommandKind.PRIVATE: self._set_private,
            CommandKind.PUBLIC: self._set_public,
            CommandKind.PERSONALITY: self._personality,
            CommandKind.HELP: self._help,
        }
        self._tasks: set[asyncio.Task] = set()  # 进行中的命令与 chat 交换任务
        self._running = False

    async def dispatch(self, command: InboundCommand) -> Reply:
        """
        处理单条命令并返回回复。

        InputError / UpstreamError / SessionBusyError 都会被转换为仅发起者可见的失败回复，
        其它异常原样向上传播。

        参数:
            command: 入站命令

        返回:
            Reply（含投递范围）
        """
        preview = truncate_string(command.text or "", 80)
        logger.info(f"Processing /{command.kind.value} from {command.key}: {preview}")

        handler = self._handlers[CommandKind(command.kind)]
        try:
            return await handler(command)
        except InputError as e:
            logger.warning(f"Rejected /{command.kind.value} from {command.key}: {e.message}")
            return self._failure(command, e.message, error=e.category)
        except SessionBusyError as e:
            logger.warning(str(e))
            return self._failure(command, BUSY_TEXT, error=e.category)
        except UpstreamError as e:
            logger.error(f"Completion failed for {command.key}: {e}")
            return self._failure(
                command,
                f"The completion service failed ({e.kind.value}): {e.message}",
                error=e.category,
                upstream_kind=e.kind,
            )

    # ------------------------------------------------------------------
    # 命令处理
    # ------------------------------------------------------------------

    async def _chat(self, command: InboundCommand) -> Reply:
        text = (command.text or "").strip()
        if not text:
            raise InputError("Please provide a message for the AI.")

        async def exchange(session: Session) -> tuple[Completion, Visibility, SessionUsage]:
            session.append_turn(Role.USER, text)
            window = self.window.select(session.history)
            completion = await self.client.complete(
                window,
                system_prompt=self.personas.prompt_for(session.persona),
                user=command.key.user_id,
            )
            session.append_turn(Role.ASSISTANT, completion.text)
            session.record_usage(completion.usage)
            logger.debug(
                f"Session {command.key}: {len(session.history)} turns, {len(window)} sent, "
                f"{completion.model}: {completion.usage.get('total_tokens', '?')} tokens "
                f"({session.usage.total_tokens} this session)"
            )
            # 用量在锁内取快照
            return completion, session.visibility, replace(session.usage)

        task = self._track(asyncio.create_task(self.store.with_session(command.key, exchange)))
        completion, visibility, usage = await asyncio.shield(task)

        audience = Audience.ISSUER if visibility is Visibility.PRIVATE else Audience.EVERYONE
        reply = self._reply(command, completion.text, audience)
        reply.metadata.update({
            "model": completion.model,
            "tokens": completion.usage.get("total_tokens"),
            "session_tokens": usage.total_tokens,
            "chat_count": usage.chat_count,
        })
        return reply

    async def _reset(self, command: InboundCommand) -> Reply:
        await self.store.with_session(command.key, lambda s: s.clear_history())
        return self._reply(command, "Chat history has been reset.")

    async def _set_private(self, command: InboundCommand) -> Reply:
        await self.store.with_session(command.key, lambda s: s.set_visibility(Visibility.PRIVATE))
        return self._reply(command, "Chat privacy set to private.")

    async def _set_public(self, command: InboundCommand) -> Reply:
        await self.store.with_session(command.key, lambda s: s.set_visibility(Visibility.PUBLIC))
        return self._reply(command, "Chat privacy set to public.")

    async def _personality(self, command: InboundCommand) -> Reply:
        available = ", ".join(self.personas.names()) or "none"
        name = (command.text or "").strip()
        if not name:
            raise InputError(f"Please choose a personality. Available: {available}")
        persona = self.personas.get(name)
        if persona is None:
            raise InputError(f"Unknown personality '{name}'. Available: {available}")

        await self.store.with_session(command.key, lambda s: s.set_persona(persona.name))
        return self._reply(command, f"Personality has been set to {persona.name}.")

    async def _help(self, command: InboundCommand) -> Reply:
        return self._reply(command, HELP_TEXT)

    # ------------------------------------------------------------------
    # 回复构造
    # ------------------------------------------------------------------

    @staticmethod
    def _reply(command: InboundCommand, content: str, audience: Audience = Audience.ISSUER) -> Reply:
        return Reply(
            key=command.key,
            content=content,
            audience=audience,
            channel=command.channel,
            metadata=dict(command.metadata),
        )

    @staticmethod
    def _failure(
        command: InboundCommand,
        content: str,
        error: str,
        upstream_kind: UpstreamKind | None = None,
    ) -> Reply:
        return Reply(
            key=command.key,
            content=content,
            audience=Audience.ISSUER,
            ok=False,
            error=error,
            upstream_kind=upstream_kind,
            channel=command.channel,
            metadata=dict(command.metadata),
        )

    # ------------------------------------------------------------------
    # 总线模式：每条入站命令一个任务
    # ------------------------------------------------------------------

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        # 调用方被取消后 shield 内的任务无人等待，在这里取走异常避免 "never retrieved" 警告
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"Background task finished with {type(task.exception()).__name__}")

    async def run(self) -> None:
        """
        启动分发循环，持续消费消息总线上的入站命令。

        每条命令在独立任务中处理，不同对话的命令并发执行；
        同一对话的命令由 SessionStore 串行化。
        """
        if self.bus is None:
            raise RuntimeError("CommandDispatcher.run() requires a MessageBus")

        self._running = True
        logger.info("Command dispatcher started")

        while self._running:
            try:
                command = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            self._track(asyncio.create_task(self._handle(command)))

    async def _handle(self, command: InboundCommand) -> None:
        try:
            reply = await self.dispatch(command)
        except Exception as e:
            logger.error(f"Error processing /{command.kind.value} from {command.key}: {e}")
            reply = self._failure(command, f"Sorry, I encountered an error: {e}", error="internal")
        await self.bus.publish_outbound(reply)

    def stop(self) -> None:
        """停止分发循环（已经开始处理的命令会继续完成）。"""
        self._running = False
        logger.info("Command dispatcher stopping")

    async def drain(self) -> None:
        """等待所有进行中的命令处理完成。"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

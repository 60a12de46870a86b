"""
会话管理器实现模块 - 每个对话的历史、可见性以及串行化访问。

本模块包含：
- ConversationKey：对话标识（用户 × 频道），不可变，作为会话存储的唯一键
- Turn：一条对话消息（user / assistant），创建后不可变
- Session：单个对话的可变状态（历史、可见性模式、人格、用量统计）
- SessionStore：会话存储，负责按键懒创建会话，并为每个键提供独占访问

【并发模型】
整个 relaybot 运行在 asyncio 事件循环上，每条入站命令对应一个任务：
- 顶层的 key → 槽位 映射只在同步代码中读写（查找/插入之间没有 await），
  因此"首次访问即创建"天然是原子的，不会为同一个键创建两个 Session
- 每个槽位持有自己的 asyncio.Lock，不同键之间互不阻塞
- 槽位上的 users 计数记录正在持有或等待该锁的任务数，空闲回收只会回收 users == 0 的槽位

会话状态只存在于内存中，进程重启即丢失。

【Java 开发者类比】
- SessionStore 类似于 ConcurrentHashMap<Key, ReentrantLock + State>
- access() 类似于 try { lock.lock(); ... } finally { lock.unlock(); }
"""

from __future__ import annotations

import asyncio
import inspect
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, TypeVar

from loguru import logger

from relaybot.errors import SessionBusyError

T = TypeVar("T")


class Role(str, Enum):
    """消息角色。"""
    USER = "user"
    ASSISTANT = "assistant"


class Visibility(str, Enum):
    """
    回复可见性模式。

    PRIVATE：回复只对发起者可见
    PUBLIC：回复对频道内所有人可见（新会话的默认值）
    """
    PRIVATE = "private"
    PUBLIC = "public"


@dataclass(frozen=True)
class ConversationKey:
    """
    对话标识 - 发起用户与所在频道的组合。

    frozen=True 让实例可哈希，直接用作字典键。
    """

    user_id: str
    channel_id: str

    def __str__(self) -> str:
        return f"{self.channel_id}:{self.user_id}"


@dataclass(frozen=True)
class Turn:
    """
    一条对话消息。

    属性:
        role: 消息角色（user / assistant）
        text: 消息文本
        sequence: 会话内单调递增的序号，从 0 开始
        created_at: 创建时间
    """

    role: Role
    text: str
    sequence: int
    created_at: datetime = field(default_factory=datetime.now)

    def to_message(self) -> dict[str, str]:
        """转换为补全服务需要的 {"role", "content"} 格式。"""
        return {"role": self.role.value, "content": self.text}


@dataclass
class SessionUsage:
    """会话级别的用量统计（reset 不会清空）。"""

    chat_count: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class Session:
    """
    单个对话的可变状态。

    只能在 SessionStore.access() / with_session() 的独占区域内修改。
    历史只允许追加或整体清空，从不部分改写。

    属性:
        key: 对话标识
        history: 按对话顺序排列的消息列表
        visibility: 回复可见性模式，默认 PUBLIC
        persona: 选中的人格名称，None 表示使用默认人格
        usage: 用量统计
        created_at: 会话创建时间
        last_activity: 最近一次命令的时间（空闲回收依据）
    """

    key: ConversationKey
    history: list[Turn] = field(default_factory=list)
    visibility: Visibility = Visibility.PUBLIC
    persona: str | None = None
    usage: SessionUsage = field(default_factory=SessionUsage)
    created_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    def touch(self) -> None:
        """刷新最近活动时间。"""
        self.last_activity = datetime.now()

    def append_turn(self, role: Role, text: str) -> Turn:
        """
        追加一条消息。

        序号取上一条消息的序号 + 1，历史为空时为 0。

        参数:
            role: 消息角色
            text: 消息文本

        返回:
            新创建的 Turn
        """
        sequence = self.history[-1].sequence + 1 if self.history else 0
        turn = Turn(role=Role(role), text=text, sequence=sequence)
        self.history.append(turn)
        self.touch()
        return turn

    def clear_history(self) -> None:
        """清空历史，序号随之从 0 重新开始。可见性、人格和用量保持不变。"""
        self.history = []
        self.touch()

    def set_visibility(self, mode: Visibility) -> None:
        """设置可见性模式（幂等）。"""
        self.visibility = Visibility(mode)
        self.touch()

    def set_persona(self, name: str | None) -> None:
        self.persona = name
        self.touch()

    def record_usage(self, usage: dict[str, int] | None) -> None:
        """累计一次成功补全的用量（补全服务未返回用量时只累加次数）。"""
        self.usage.chat_count += 1
        if not usage:
            return
        self.usage.prompt_tokens += usage.get("prompt_tokens", 0) or 0
        self.usage.completion_tokens += usage.get("completion_tokens", 0) or 0
        self.usage.total_tokens += usage.get("total_tokens", 0) or 0


class _SessionSlot:
    """会话存储中的一个槽位：会话本体 + 专属锁 + 使用者计数。"""

    __slots__ = ("session", "lock", "users")

    def __init__(self, session: Session):
        self.session = session
        self.lock = asyncio.Lock()
        self.users = 0  # 持有锁或正在等待锁的任务数


class SessionStore:
    """
    会话存储 - 所有 Session 的唯一所有者。

    提供按键串行化的独占访问：同一个键同一时刻最多只有一个访问在进行，
    不同键的访问互不阻塞。其它组件不会在单次独占访问之外持有 Session 引用。

    属性:
        lock_timeout: 等待会话锁的最长秒数，None 表示无限等待
        _slots: 会话槽位字典 {ConversationKey: _SessionSlot}
    """

    def __init__(self, lock_timeout: float | None = None):
        """
        初始化会话存储。

        参数:
            lock_timeout: 等待会话锁的超时秒数。超时抛出 SessionBusyError。
        """
        self.lock_timeout = lock_timeout
        self._slots: dict[ConversationKey, _SessionSlot] = {}

    def _slot_for(self, key: ConversationKey) -> _SessionSlot:
        # 查找与插入之间没有 await，对事件循环而言是原子的
        slot = self._slots.get(key)
        if slot is None:
            slot = _SessionSlot(Session(key=key))
            self._slots[key] = slot
            logger.debug(f"Created session {key}")
        return slot

    @asynccontextmanager
    async def access(self, key: ConversationKey) -> AsyncIterator[Session]:
        """
        获取某个会话的独占访问权（不存在时自动创建）。

        用法:
            async with store.access(key) as session:
                session.append_turn(Role.USER, "hello")

        退出上下文时（包括异常退出）自动释放锁。不做自动回滚：
        调用方需要保证在异常时会话仍处于自洽状态。

        参数:
            key: 对话标识

        异常:
            SessionBusyError: 配置了 lock_timeout 且超时仍未获得锁
        """
        slot = self._slot_for(key)
        slot.users += 1
        try:
            if self.lock_timeout is None:
                await slot.lock.acquire()
            else:
                try:
                    await asyncio.wait_for(slot.lock.acquire(), timeout=self.lock_timeout)
                except asyncio.TimeoutError:
                    raise SessionBusyError(key, self.lock_timeout) from None
            try:
                slot.session.touch()
                yield slot.session
            finally:
                slot.lock.release()
        finally:
            slot.users -= 1

    async def with_session(
        self,
        key: ConversationKey,
        fn: Callable[[Session], T | Awaitable[T]],
    ) -> T:
        """
        在独占访问区域内执行 fn(session) 并返回其结果。

        fn 可以是普通函数，也可以是协程函数；其异常原样向上传播。

        参数:
            key: 对话标识
            fn: 接收可变 Session 的回调

        返回:
            fn 的返回值
        """
        async with self.access(key) as session:
            result = fn(session)
            if inspect.isawaitable(result):
                result = await result
            return result

    def peek(self, key: ConversationKey) -> Session | None:
        """只读查看某个会话（不加锁、不创建、不刷新活动时间），用于状态展示。"""
        slot = self._slots.get(key)
        return slot.session if slot else None

    def discard(self, key: ConversationKey) -> bool:
        """
        丢弃一个空闲会话。

        返回:
            True 表示已删除；会话不存在或正被访问时返回 False
        """
        slot = self._slots.get(key)
        if slot is None or slot.users:
            return False
        del self._slots[key]
        return True

    def evict_idle(self, max_idle: float, now: datetime | None = None) -> list[ConversationKey]:
        """
        回收长时间空闲的会话。

        只回收 last_activity 早于 now - max_idle 且当前没有任务持有/等待锁的会话，
        因此不会与同一个键上正在进行的访问并发。

        参数:
            max_idle: 空闲阈值（秒）
            now: 参考时间，默认当前时间

        返回:
            被回收的键列表
        """
        cutoff = (now or datetime.now()) - timedelta(seconds=max_idle)
        evicted = [
            key for key, slot in self._slots.items()
            if slot.users == 0 and slot.session.last_activity < cutoff
        ]
        for key in evicted:
            del self._slots[key]
        if evicted:
            logger.info(f"Evicted {len(evicted)} idle session(s)")
        return evicted

    def keys(self) -> Iterator[ConversationKey]:
        return iter(list(self._slots))

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, key: Any) -> bool:
        return key in self._slots

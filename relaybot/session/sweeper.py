"""
空闲会话回收服务 - 定期回收长时间无活动的会话，控制内存占用。

工作方式：
- 每隔 interval_s 秒调用一次 SessionStore.evict_idle(idle_timeout_s)
- evict_idle 只回收没有任务持有或等待锁的会话，因此不会与进行中的命令冲突
- idle_timeout_s 为 None 时服务不启动（回收是可选的资源约束，不影响正确性）
"""

import asyncio

from loguru import logger

from relaybot.session.manager import ConversationKey, SessionStore

DEFAULT_SWEEP_INTERVAL_S = 5 * 60


class IdleSweeper:
    """
    空闲会话回收服务。

    属性:
        store: 被回收的会话存储
        idle_timeout_s: 空闲阈值（秒），None 表示禁用
        interval_s: 扫描间隔（秒）
    """

    def __init__(
        self,
        store: SessionStore,
        idle_timeout_s: float | None,
        interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
    ):
        self.store = store
        self.idle_timeout_s = idle_timeout_s
        self.interval_s = interval_s
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def enabled(self) -> bool:
        return self.idle_timeout_s is not None

    async def start(self) -> None:
        """启动回收循环。未配置 idle_timeout_s 时直接返回。"""
        if not self.enabled:
            logger.info("Idle session sweeper disabled")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Idle session sweeper started (every {self.interval_s}s, "
            f"idle after {self.idle_timeout_s}s)"
        )

    def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Idle sweep error: {e}")

    def sweep(self) -> list[ConversationKey]:
        """立即执行一次回收，返回被回收的键。"""
        if not self.enabled:
            return []
        return self.store.evict_idle(self.idle_timeout_s)

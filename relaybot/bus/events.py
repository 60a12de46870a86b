"""
命令事件类型定义模块 - 定义消息总线中传输的数据结构。

本模块定义了：
- CommandKind：斜杠命令种类（chat / reset / private / public / personality / help）
- InboundCommand：入站命令（从渠道到 CommandDispatcher）
- Audience：回复的投递范围（仅发起者 / 所有参与者）
- Reply：出站回复（从 CommandDispatcher 到渠道）

渠道只需要把平台的交互事件转换为 InboundCommand，
再按 Reply.audience 决定是发送临时（ephemeral）消息还是普通消息。

【Java 开发者类比】
- @dataclass 等价于 Java 的 record 类或 Lombok 的 @Data
- str 枚举类似于带字符串值的 Java enum
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from relaybot.errors import UpstreamKind
from relaybot.session.manager import ConversationKey


class CommandKind(str, Enum):
    """斜杠命令种类。"""
    CHAT = "chat"
    RESET = "reset"
    PRIVATE = "private"
    PUBLIC = "public"
    PERSONALITY = "personality"
    HELP = "help"


class Audience(str, Enum):
    """
    回复投递范围。

    ISSUER：只有发起者可见（Discord 中即 ephemeral 消息）
    EVERYONE：频道内所有参与者可见
    """
    ISSUER = "issuer"
    EVERYONE = "everyone"


@dataclass
class InboundCommand:
    """
    入站命令 - 渠道收到的一次斜杠命令交互。

    属性:
        key: 对话标识（用户 × 频道）
        kind: 命令种类
        text: 命令参数文本（chat 的消息正文、personality 的人格名称）
        channel: 来源渠道名（用于出站路由，如 "console"）
        user_name: 发起者显示名（仅用于日志）
        timestamp: 接收时间
        metadata: 渠道特有的附加数据（如交互 token）
    """

    key: ConversationKey
    kind: CommandKind
    text: str | None = None
    channel: str = ""
    user_name: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class Reply:
    """
    出站回复 - 命令处理结果与投递指令。

    属性:
        key: 对话标识
        content: 回复文本
        audience: 投递范围
        ok: 命令是否成功
        error: 失败类别（input / upstream / busy），成功时为 None
        upstream_kind: 补全服务失败的具体类别
        channel: 目标渠道名
        metadata: 从入站命令透传的渠道数据
    """

    key: ConversationKey
    content: str
    audience: Audience = Audience.ISSUER
    ok: bool = True
    error: str | None = None
    upstream_kind: UpstreamKind | None = None
    channel: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ephemeral(self) -> bool:
        """是否应以仅发起者可见的方式发送。"""
        return self.audience is Audience.ISSUER

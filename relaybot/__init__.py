"""
relaybot - 斜杠命令聊天中继机器人

模块概述：
    relaybot 接收消息平台的斜杠命令交互（/chat、/reset、/private、/public），
    把对话转发给第三方大语言模型补全服务并返回回复，
    同时为每个对话（用户 × 频道）维护消息历史与可见性模式。

    核心是会话管理器：
    - 按对话保存历史并控制发给补全服务的上下文大小
    - 按可见性模式决定回复仅发起者可见还是所有人可见
    - 同一对话的命令串行执行，不同对话互不阻塞
"""

__version__ = "0.1.0"

__logo__ = "🔁"

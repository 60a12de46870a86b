"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 relaybot 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── session          - 会话与上下文窗口（窗口大小、字符预算、锁超时、空闲回收）
├── provider         - 补全服务（模型、API Key、回复长度、温度、超时）
├── channels         - 渠道配置（本地控制台）
├── personas         - 可选人格列表（名称 + 系统提示词）
└── default_persona  - 未选择人格时使用的人格名称

对于 Java 开发者：
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
- Field(default_factory=...) 类似于 Java 中用工厂方法创建可变默认值，避免共享引用问题
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from relaybot.dispatch.personas import DEFAULT_PERSONA_NAME, DEFAULT_PERSONA_PROMPT, Persona


class SessionConfig(BaseModel):
    """
    会话与上下文窗口配置。

    - max_turns / max_turn_chars / max_total_chars 控制每次发给补全服务的历史大小
    - lock_timeout 控制同一对话上命令排队等待的最长时间，超时回复"忙，请稍后重试"
    - idle_timeout 为空时不回收空闲会话
    """
    max_turns: int = Field(default=20, ge=1)  # 窗口内最多保留的消息条数
    max_turn_chars: int = Field(default=4000, ge=1)  # 最近一条消息的字符预算（超出时保留尾部）
    max_total_chars: int | None = Field(default=None, ge=1)  # 窗口总字符预算（可选）
    lock_timeout: float | None = Field(default=30.0, gt=0)  # 等待会话锁的超时（秒），None 表示无限等待
    idle_timeout: float | None = Field(default=None, gt=0)  # 空闲多少秒后回收会话（可选）
    sweep_interval: float = Field(default=300.0, gt=0)  # 空闲回收扫描间隔（秒）


class ProviderConfig(BaseModel):
    """
    补全服务配置。

    model 使用 LiteLLM 的 "provider/model" 格式，如 "openai/gpt-3.5-turbo"。
    """
    model: str = "openai/gpt-3.5-turbo"
    api_key: str = ""  # API 密钥（留空则依赖 LiteLLM 读取的环境变量，如 OPENAI_API_KEY）
    api_base: str | None = None  # 自定义 API 基础 URL（用于私有部署或代理）
    extra_headers: dict[str, str] | None = None
    max_tokens: int = Field(default=300, ge=1)  # 单次回复的最大 token 数
    temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    request_timeout: float = Field(default=60.0, gt=0)  # 单次请求超时（秒）


class ConsoleConfig(BaseModel):
    """本地控制台渠道配置。控制台会话使用固定的 user_id / channel_id 组成对话标识。"""
    user_id: str = "local"
    channel_id: str = "console"
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 ID 白名单（为空表示不限制）


class ChannelsConfig(BaseModel):
    """渠道聚合配置。"""
    console: ConsoleConfig = Field(default_factory=ConsoleConfig)


class PersonaConfig(BaseModel):
    """单个人格：名称 + 系统提示词。"""
    name: str
    prompt: str
    description: str = ""

    def to_persona(self) -> Persona:
        return Persona(name=self.name, prompt=self.prompt, description=self.description)


def _default_personas() -> list[PersonaConfig]:
    return [PersonaConfig(name=DEFAULT_PERSONA_NAME, prompt=DEFAULT_PERSONA_PROMPT,
                          description="A helpful general-purpose assistant")]


class Config(BaseSettings):
    """
    relaybot 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: RELAYBOT_
    - 嵌套分隔符: __ (双下划线)
    - 示例: RELAYBOT_PROVIDER__MODEL=openai/gpt-4o 可覆盖 provider.model
    """
    session: SessionConfig = Field(default_factory=SessionConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    personas: list[PersonaConfig] = Field(default_factory=_default_personas)
    default_persona: str = DEFAULT_PERSONA_NAME

    def persona_list(self) -> list[Persona]:
        """把配置中的人格转换为运行时的 Persona 列表。"""
        return [p.to_persona() for p in self.personas]

    model_config = ConfigDict(
        env_prefix="RELAYBOT_",
        env_nested_delimiter="__"
    )

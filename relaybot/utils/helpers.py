"""
工具函数集合 - relaybot 项目全局通用的辅助函数。

函数分类：
- 路径管理：ensure_dir, get_data_path
- 字符串工具：truncate_string
"""

from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 relaybot 数据目录（~/.relaybot）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".relaybot")


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."

    返回:
        截断后的字符串
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix

"""
工具函数模块 - 提供 relaybot 项目全局通用的辅助函数。
"""

from relaybot.utils.helpers import ensure_dir, get_data_path, truncate_string

__all__ = ["ensure_dir", "get_data_path", "truncate_string"]

"""Small text helpers shared by the description formatters."""

from typing import Any

FOOTER = "✿ 本内容由 PT-Gen 自动解析生成，请勿手动修改"

# Full-width indent used by the Chinese-language templates
FULL_WIDTH_INDENT = "　　"


def join_names(items: Any, sep: str = " / ") -> str:
    """Join a list of names or ``{"name": ...}`` mappings."""
    if not isinstance(items, list):
        return ""
    names = []
    for item in items:
        name = item.get("name", "") if isinstance(item, dict) else str(item)
        if name:
            names.append(name)
    return sep.join(names)


def truncate(text: str, limit: int = 100) -> str:
    text = str(text or "").strip()
    return text[:limit].strip() + "..." if len(text) > limit else text


def indent_block(text: str, indent: str = "  ") -> str:
    return indent + str(text).replace("\n", "\n" + indent)

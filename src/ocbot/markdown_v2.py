"""Markdown → Telegram MarkdownV2 conversion layer.

OpenCode answers in ordinary Markdown (fenced code, bold, lists).
Telegram needs MarkdownV2 with its own escaping rules, which
`telegramify_markdown` handles; callers fall back to plain text when
Telegram still rejects the result.

Key function: convert_markdown(text) → MarkdownV2 string.
"""

import telegramify_markdown


def convert_markdown(text: str) -> str:
    """Convert standard Markdown to Telegram MarkdownV2 format."""
    return telegramify_markdown.markdownify(text)

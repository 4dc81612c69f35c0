"""Strip markdown so LLM replies read naturally through a speech synthesizer."""

from __future__ import annotations

import re

# Order matters: fenced blocks go before inline code, images before links.
_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    # headers (# .. ######)
    (re.compile(r"^#{1,6}\s+", re.MULTILINE), ""),
    # bold / italic / underline
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"__(.*?)__"), r"\1"),
    (re.compile(r"_(.*?)_"), r"\1"),
    # code: fenced blocks are dropped with their content
    (re.compile(r"```[\s\S]*?```"), ""),
    (re.compile(r"`(.*?)`"), r"\1"),
    # strikethrough
    (re.compile(r"~~(.*?)~~"), r"\1"),
    # images, then links -> link text
    (re.compile(r"!\[(.*?)\]\(.*?\)"), ""),
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),
    # horizontal rules
    (re.compile(r"^[-*_]{3,}$", re.MULTILINE), ""),
    # blockquotes
    (re.compile(r"^>\s+", re.MULTILINE), ""),
    # list markers
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*\d+\.\s+", re.MULTILINE), ""),
    # collapse blank lines, then whitespace runs
    (re.compile(r"\n{2,}"), "\n"),
    (re.compile(r"\s{2,}"), " "),
    # leftover markdown punctuation
    (re.compile(r"[#*_~`>-]+"), ""),
)


def _clean_once(text: str) -> str:
    for pattern, repl in _RULES:
        text = pattern.sub(repl, text)
    return text.strip()


def clean_markdown(text: str) -> str:
    """
    Remove markdown syntax while keeping the readable content.

    Runs the rule pipeline until the text stops changing. Each rule only ever
    shortens its input, so the loop terminates and the result is a fixed point:
    ``clean_markdown(clean_markdown(x)) == clean_markdown(x)``.
    """
    if not text:
        return ""

    current = text
    while True:
        cleaned = _clean_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned

"""Separation of <think> reasoning blocks from visible output."""

import re
from typing import List, NamedTuple

THINK_OPEN = "<think>"
THINK_PATTERN = re.compile(r"<think>(.*?)</think>", re.IGNORECASE | re.DOTALL)
EXCESS_NEWLINES = re.compile(r"\n{3,}")


class SplitText(NamedTuple):
    visible: str
    reasoning: List[str]


def split_reasoning(text: str) -> SplitText:
    """
    Split hidden reasoning out of a generated text.

    Every closed <think>...</think> region is removed from the visible text
    and its trimmed body collected in order. Unclosed markers stay visible.
    """
    if THINK_OPEN not in text:
        return SplitText(text, [])

    reasoning = [m.group(1).strip() for m in THINK_PATTERN.finditer(text)]
    reasoning = [segment for segment in reasoning if segment]

    visible = THINK_PATTERN.sub("", text)
    visible = EXCESS_NEWLINES.sub("\n\n", visible).strip()
    return SplitText(visible, reasoning)

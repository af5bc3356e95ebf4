"""Split raw text into ordered fragments."""

import re


def split_fragments(text: str, min_chars: int = 20, dense_window_chars: int = 1000) -> list[str]:
    """Split text into fragments at blank lines.

    Args:
        text: The text to split.
        min_chars: Fragments of this length or shorter are dropped as noise.
        dense_window_chars: Window size used when the text has no paragraph
            breaks but is longer than half a window.

    Returns:
        List of fragments in original order.
    """
    blocks = re.split(r"\n\s*\n", text)

    # Dense text with no paragraph breaks: cut at whitespace near the window size
    if len(blocks) < 2 and len(text) > dense_window_chars // 2:
        pattern = r".{1,%d}(?:\s|$)" % dense_window_chars
        blocks = re.findall(pattern, text, re.DOTALL) or [text]

    fragments = []
    for block in blocks:
        block = block.strip()
        if len(block) > min_chars:
            fragments.append(block)
    return fragments

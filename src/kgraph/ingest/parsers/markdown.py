"""Markdown file parser."""

import re
from pathlib import Path
from typing import Any

import yaml


class MarkdownParser:
    """Parse markdown files, stripping YAML frontmatter from the content."""

    def parse(self, file_path: Path) -> dict[str, Any]:
        text = file_path.read_text(encoding="utf-8", errors="replace")
        metadata: dict[str, Any] = {"source_type": "markdown"}

        fm_match = re.match(r"^---\s*\n(.*?)\n---\s*\n", text, re.DOTALL)
        if fm_match:
            try:
                fm = yaml.safe_load(fm_match.group(1)) or {}
                if isinstance(fm, dict):
                    metadata.update(fm)
            except yaml.YAMLError:
                pass
            content = text[fm_match.end():]
        else:
            content = text

        title = metadata.get("title") or file_path.stem
        return {"content": content, "metadata": metadata, "title": title}

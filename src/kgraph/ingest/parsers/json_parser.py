"""JSON parser for pre-chunked record files."""

import json
from pathlib import Path
from typing import Any


class JsonParser:
    """Parse JSON or JSON Lines files holding fragment records.

    Accepts a list of records, an object with a "records" list, or one
    record per line (.jsonl). Anything else is treated as plain content.
    """

    def parse(self, file_path: Path) -> dict[str, Any]:
        text = file_path.read_text(encoding="utf-8", errors="replace")
        title = file_path.stem

        if file_path.suffix.lower() == ".jsonl":
            records = [json.loads(line) for line in text.splitlines() if line.strip()]
            return {"records": records, "metadata": {"source_type": "records"}, "title": title}

        data = json.loads(text)
        if isinstance(data, dict) and isinstance(data.get("records"), list):
            data = data["records"]
        if isinstance(data, list) and all(isinstance(r, dict) and "content" in r for r in data):
            return {"records": data, "metadata": {"source_type": "records"}, "title": title}

        # Generic JSON - stringify
        content = json.dumps(data, indent=2, ensure_ascii=False)
        return {"content": content, "metadata": {"source_type": "json"}, "title": title}

"""Local stand-ins used when the provider is unavailable."""

import re
from collections import Counter

import numpy as np


STOPWORDS = {
    "about", "after", "also", "been", "before", "being", "between", "both", "could",
    "does", "each", "from", "have", "having", "here", "into", "itself", "more", "most",
    "much", "must", "only", "other", "over", "same", "shall", "should", "some", "such",
    "than", "that", "their", "them", "then", "there", "these", "they", "this", "those",
    "through", "under", "very", "were", "what", "when", "where", "which", "while",
    "with", "within", "without", "would", "your",
    # Portuguese
    "como", "para", "pela", "pelo", "pelas", "pelos", "mais", "essa", "esse", "esta",
    "este", "isso", "isto", "entre", "sobre", "quando", "onde", "cada", "mesmo", "deve",
    "será", "são", "está", "também", "qual", "quais", "seus", "suas", "nosso",
}

_STRUCTURE = re.compile(r"^(?:CHAPTER|CAP[IÍ]TULO|TITLE|T[IÍ]TULO|BOOK|LIVRO)\s+[IVXLCDM\d]+", re.IGNORECASE)
_ARTICLE = re.compile(r"^(?:Art\.|Article|Artigo)\s*[\d.]+(?:º|°)?", re.IGNORECASE)
_PARAGRAPH = re.compile(r"^(?:§\s*[\d.]+(?:º|°)?|Par[aá]grafo\s+[úu]nico|Paragraph\s+\d+)", re.IGNORECASE)
_PARAGRAPH_START = re.compile(r"^(?:§|Par[aá]grafo|Paragraph)", re.IGNORECASE)
_ITEM = re.compile(r"^([IVXLCDM]+)\s*[.\-–]\s+")
_SUBITEM = re.compile(r"^([a-z])\)\s+")


def classify_hierarchy(text: str) -> tuple[str, str]:
    """Classify a fragment by the structural marker on its first line.

    Returns (entity_type, entity_label).
    """
    clean = text.strip()
    first_line = clean.split("\n", 1)[0].strip() if clean else ""

    if m := _STRUCTURE.match(first_line):
        return "STRUCTURE", m.group(0).upper()
    if m := _ARTICLE.match(first_line):
        return "ARTICLE", m.group(0)
    if _PARAGRAPH_START.match(first_line):
        m = _PARAGRAPH.match(first_line)
        return "PARAGRAPH", m.group(0) if m else "§"
    if m := _ITEM.match(first_line):
        return "ITEM", f"Item {m.group(1)}"
    if m := _SUBITEM.match(first_line):
        return "SUBITEM", f"Subitem {m.group(1)})"
    if first_line and len(first_line) < 60 and first_line == first_line.upper() and re.search(r"[A-Z]", first_line):
        return "SECTION_TITLE", first_line[:20]

    words = clean.split()
    label = " ".join(words[:3]) + ("..." if len(words) > 3 else "")
    return "TEXT", label or "Text"


def extract_keywords(text: str, limit: int = 5) -> list[str]:
    """Most frequent non-stopword terms longer than 3 characters."""
    words = re.findall(r"\w+", text.lower())
    counts = Counter(w for w in words if len(w) > 3 and not w.isdigit() and w not in STOPWORDS)
    return [w for w, _ in counts.most_common(limit)]


def zero_vector(dim: int) -> list[float]:
    return [0.0] * dim


def noise_vector(dim: int, rng: np.random.Generator | None = None, scale: float = 0.1) -> list[float]:
    """Small uniform noise, so offline vectors remain distinguishable to clustering."""
    rng = rng or np.random.default_rng()
    return (rng.random(dim) * scale).tolist()

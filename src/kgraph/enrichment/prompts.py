"""Prompt templates and output schemas for provider calls."""

CLASSIFY_PROMPT = """Classify this fragment of a structured document.

Fragment:
{content}

Provide:
1. **entity_type**: the structural kind of the fragment (e.g. ARTICLE, PARAGRAPH, ITEM, CHAPTER, TEXT)
2. **entity_label**: a short label, such as "Art. 5" or the first words of the passage
3. **keywords**: the 3 most important terms or named entities in it"""

CLASSIFY_SCHEMA = {
    "type": "object",
    "properties": {
        "entity_type": {"type": "string"},
        "entity_label": {"type": "string"},
        "keywords": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["entity_type", "entity_label", "keywords"],
}

HYDE_PROMPT = """Question: "{query}"

Write one paragraph that would be the ideal, technically precise answer to this question, as it might appear in a reference document. Do not hedge or mention that it is hypothetical."""

RELEVANCE_PROMPT = """Query: "{query}"

Context:
\"\"\"{context}\"\"\"

Judge whether the context helps answer the query. Give a relevance score between 0.0 and 1.0 and a boolean verdict."""

RELEVANCE_SCHEMA = {
    "type": "object",
    "properties": {
        "score": {"type": "number", "minimum": 0, "maximum": 1},
        "relevant": {"type": "boolean"},
    },
    "required": ["score", "relevant"],
}

ANSWER_SYSTEM = (
    "You answer questions using ONLY the provided context from the user's knowledge graph. "
    "If the context doesn't contain enough information, say so."
)

ANSWER_PROMPT = """CONTEXT:
{context}

HISTORY:
{history}

QUESTION: {query}

ANSWER:"""

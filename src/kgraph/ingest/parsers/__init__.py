"""Parsers for the file formats accepted at ingestion."""

from .markdown import MarkdownParser
from .text import TextParser
from .json_parser import JsonParser

PARSERS = {
    ".md": MarkdownParser,
    ".markdown": MarkdownParser,
    ".txt": TextParser,
    ".text": TextParser,
    ".json": JsonParser,
    ".jsonl": JsonParser,
}

__all__ = ["PARSERS", "MarkdownParser", "TextParser", "JsonParser"]

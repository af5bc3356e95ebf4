"""Append-only conversation memory."""

from ..models import ConversationTurn


class ConversationMemory:
    def __init__(self):
        self.turns: list[ConversationTurn] = []

    def add(self, role: str, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=role, content=content)
        self.turns.append(turn)
        return turn

    def window(self, size: int) -> list[ConversationTurn]:
        """The most recent `size` turns, oldest first."""
        if size <= 0:
            return []
        return self.turns[-size:]

    def format_history(self, size: int) -> str:
        return "\n".join(f"{t.role}: {t.content}" for t in self.window(size))

    def __len__(self) -> int:
        return len(self.turns)

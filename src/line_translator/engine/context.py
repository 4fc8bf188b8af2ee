"""
Context window selection.

Chooses which prior exchanges accompany the next request and redacts the
flagged ones, so disallowed content never reaches a later prompt while line
positions stay aligned.
"""

from typing import Callable, Mapping, Optional, Sequence

from line_translator.llm.text_utils import REDACTED_PLACEHOLDER
from line_translator.models.enums import HistoryMode
from line_translator.models.translation_models import ModerationFlag, WorkingEntry

Placeholder = Callable[[int], str]


class ContextWindow:
    """
    History selector.

    Modes:
        ENTRIES: last `budget` entries (0 disables context)
        TOKENS: walk back summing per-entry tokens; the entry that crosses
            `budget` is still included
        FULL: the whole history
    """

    def __init__(self, mode: HistoryMode = HistoryMode.ENTRIES, budget: int = 10):
        if budget < 0:
            raise ValueError("budget must be >= 0")
        self.mode = mode
        self.budget = budget

    def select(
        self,
        history: Sequence[WorkingEntry],
        flags: Optional[Mapping[int, ModerationFlag]] = None,
        placeholder: Optional[Placeholder] = None,
    ) -> list[WorkingEntry]:
        """
        Entries to send as context, oldest first.

        Args:
            history: Resolved entries in emission order
            flags: Flagged absolute indices
            placeholder: Renders the redacted text for an index (defaults to "-")
        """
        if not history:
            return []

        if self.mode is HistoryMode.FULL:
            selected = list(history)
        elif self.budget == 0:
            return []
        elif self.mode is HistoryMode.TOKENS:
            selected = self._by_tokens(history)
        else:
            selected = list(history[-self.budget:])

        if not flags:
            return selected
        return [self._redact(entry, placeholder) if entry.index in flags else entry for entry in selected]

    def _by_tokens(self, history: Sequence[WorkingEntry]) -> list[WorkingEntry]:
        total = 0.0
        start = len(history)
        for i in range(len(history) - 1, -1, -1):
            total += history[i].tokens
            start = i
            if total > self.budget:
                break
        return list(history[start:])

    @staticmethod
    def _redact(entry: WorkingEntry, placeholder: Optional[Placeholder]) -> WorkingEntry:
        text = placeholder(entry.index) if placeholder is not None else REDACTED_PLACEHOLDER
        return entry.model_copy(update={"source": text, "translation": text})

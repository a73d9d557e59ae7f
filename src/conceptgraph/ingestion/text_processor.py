"""
Text normalisation and tokenisation for the semantic index and embedder.

Turns node kinds, property keys and string property values into lowercase
tokens. Identifiers such as "machine_learning" or "DataScience" are split
into their parts and also kept whole, so both "machine_learning" and
"learning" find the node.
"""

import re
from typing import Iterable, List


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SPLIT = re.compile(r"[^0-9a-zA-Z]+")


STOP_WORDS = frozenset({
    'the', 'a', 'an', 'is', 'are', 'was', 'were', 'be', 'been',
    'to', 'of', 'in', 'for', 'on', 'with', 'at', 'by', 'from',
    'as', 'into', 'and', 'but', 'or', 'nor', 'so',
    'this', 'that', 'these', 'those', 'it', 'its',
})


class TextProcessor:
    """
    Tokenizer for index keys.

    Args:
        min_length: Minimum token length to keep
        keep_compounds: Also emit the whole normalised identifier
            ("machine_learning") alongside its parts
        stop_words: Tokens to drop
    """

    def __init__(self, min_length: int = 2, keep_compounds: bool = True,
                 stop_words: Iterable[str] = STOP_WORDS):
        self.min_length = min_length
        self.keep_compounds = keep_compounds
        self.stop_words = frozenset(stop_words)

    def clean(self, text: str) -> str:
        """Lowercase and collapse whitespace."""
        if not text:
            return ""
        return " ".join(text.split()).lower()

    def tokenize(self, text: str) -> List[str]:
        """
        Split text into unique tokens, preserving first-seen order.

        Args:
            text: Raw text (identifier, label, free text)

        Returns:
            List of lowercase tokens
        """
        if not text:
            return []

        tokens: List[str] = []
        seen = set()

        def emit(token: str):
            if len(token) >= self.min_length and token not in self.stop_words and token not in seen:
                seen.add(token)
                tokens.append(token)

        for chunk in text.split():
            if self.keep_compounds:
                compound = chunk.strip(".,;:!?\"'()[]{}").lower()
                if compound and _SPLIT.sub("", compound) != "":
                    emit(compound)
            for part in _SPLIT.split(_CAMEL_BOUNDARY.sub(" ", chunk)):
                for word in part.split():
                    emit(word.lower())

        return tokens

    def tokenize_many(self, texts: Iterable[str]) -> List[str]:
        """Tokenize several texts into one de-duplicated token list."""
        tokens: List[str] = []
        seen = set()
        for text in texts:
            for token in self.tokenize(text):
                if token not in seen:
                    seen.add(token)
                    tokens.append(token)
        return tokens

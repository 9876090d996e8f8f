import random
from typing import Container

from anyshare import config


class IdentifierAllocator:
    """Generates short random identifiers that are not in use.

    Candidates are drawn until one is absent from ``index``. There is no
    retry cap: with 32**4 possible ids and a small live set, collisions are
    rare, and a full id space would loop forever. That is an accepted risk.
    """

    def __init__(self, length: int = config.ID_LENGTH, alphabet: str = config.ID_ALPHABET):
        if length <= 0:
            raise ValueError("Identifier length must be positive")
        if not alphabet:
            raise ValueError("Identifier alphabet must not be empty")
        self.length = length
        self.alphabet = alphabet
        self._random = random.SystemRandom()

    def candidate(self) -> str:
        return ''.join(self._random.choice(self.alphabet) for _ in range(self.length))

    def allocate(self, index: Container[str]) -> str:
        """Return an identifier not contained in ``index``. Does not insert it."""
        object_id = self.candidate()
        while object_id in index:
            object_id = self.candidate()
        return object_id

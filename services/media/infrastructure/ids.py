from __future__ import annotations

import secrets


class TokenIdProvider:
    def __init__(self, prefix: str = "", length: int = 32) -> None:
        self._prefix = prefix
        self._length = length

    def generate(self) -> str:
        token = secrets.token_hex((self._length + 1) // 2)[: self._length]
        if not self._prefix:
            return token
        return f"{self._prefix}_{token}"

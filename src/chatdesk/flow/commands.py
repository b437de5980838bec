# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Start/end command recognition.

A message is a command when its normalized text starts with the
normalized command (``"abrir ticket: ..."`` matches ``ABRIR TICKET``).
The command words plus an optional ``:`` or ``-`` are then stripped from
the original body; what remains is parsed as ticket data.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass

from chatdesk.text import normalize_text, strip_accents, tokenize

# Combining diacritics left behind by NFD decomposition
_COMBINING = "[\u0300-\u036f]*"


def _command_pattern(command: str) -> re.Pattern[str]:
    tokens = [
        "".join(f"{re.escape(ch)}{_COMBINING}" for ch in token)
        for token in tokenize(strip_accents(command))
    ]
    words = r"\s+".join(tokens)
    return re.compile(rf"^\s*{words}\s*[:\-]?\s*", re.IGNORECASE)


@dataclass(frozen=True)
class CommandSpec:
    command: str
    normalized: str
    pattern: re.Pattern[str]

    @classmethod
    def build(cls, command: str) -> CommandSpec:
        return cls(command, normalize_text(command), _command_pattern(command))

    def matches(self, normalized_body: str) -> bool:
        return normalized_body.startswith(self.normalized)

    def strip(self, body: str) -> str:
        """Body without the leading command words and separator."""
        decomposed = unicodedata.normalize("NFD", body)
        remainder = self.pattern.sub("", decomposed, count=1)
        return unicodedata.normalize("NFC", remainder).strip()


def build_command_specs(commands: Iterable[str]) -> list[CommandSpec]:
    return [CommandSpec.build(command) for command in commands if command.strip()]


def match_command(
    normalized_body: str, specs: list[CommandSpec]
) -> CommandSpec | None:
    for spec in specs:
        if spec.matches(normalized_body):
            return spec
    return None


__all__ = ["CommandSpec", "build_command_specs", "match_command"]

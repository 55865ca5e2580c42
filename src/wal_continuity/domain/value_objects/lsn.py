"""Log Sequence Number value object.

PostgreSQL prints an LSN as two hexadecimal 32 bit halves separated by
a slash, e.g. ``0/6000158`` or ``16/B374D848``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


_LSN_RE = re.compile(r"^([0-9A-Fa-f]{1,8})/([0-9A-Fa-f]{1,8})$")


@dataclass(frozen=True, slots=True, order=True)
class LSN:
    """A position in the WAL stream.

    Attributes:
        value: Absolute 64 bit byte position.
    """

    value: int

    @classmethod
    def parse(cls, text: str) -> LSN:
        """Parse the ``HI/LO`` textual form.

        Raises:
            ValueError: If the text is not a valid LSN.
        """
        match = _LSN_RE.match(text.strip())
        if match is None:
            raise ValueError(f"invalid LSN: {text!r}")
        high, low = (int(group, 16) for group in match.groups())
        return cls((high << 32) | low)

    def __str__(self) -> str:
        return f"{self.value >> 32:X}/{self.value & 0xFFFFFFFF:X}"

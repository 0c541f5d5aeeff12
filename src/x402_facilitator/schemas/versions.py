from enum import IntEnum
from typing import Any, List


class ProtocolVersion(IntEnum):
    """x402 wire protocol versions understood by the normalizer."""
    V1 = 1
    V2 = 2

    @classmethod
    def from_value(cls, value: Any) -> "ProtocolVersion":
        # bool is an int subclass; True must not pass as version 1
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Unsupported protocol version: {value!r}")
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unsupported protocol version: {value!r}")


SUPPORTED_VERSIONS: List[ProtocolVersion] = [ProtocolVersion.V1, ProtocolVersion.V2]

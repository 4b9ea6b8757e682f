"""Type-prefixed identifiers for every entity kind.

Format is ``<prefix>-<8 hex chars>`` (e.g. ``O-a1b2c3d4``). The random part
carries 32 bits from a UUID4, which is plenty at a few hundred entities per
month.
"""

import uuid
from enum import Enum


class EntityKind(str, Enum):
    ORDER = "O"
    CUSTOMER = "C"
    VENDOR = "V"
    USER = "U"
    PRODUCT_TYPE = "PT"
    LEDGER_ENTRY = "LE"


RANDOM_HEX_CHARS = 8


def generate_id(kind: EntityKind) -> str:
    return f"{EntityKind(kind).value}-{uuid.uuid4().hex[:RANDOM_HEX_CHARS]}"

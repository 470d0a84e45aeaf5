"""
Steam identity value type.

Every player tracked by the world state is keyed by a 64-bit SteamID. The
console log prints them in Steam3 form (``[U:1:123456]``) while the Steam Web
API speaks 64-bit decimal strings, so both conversions live here.
"""

import re
from dataclasses import dataclass
from enum import IntEnum


class SteamAccountType(IntEnum):
    """Account types encoded in bits 52-55 of a SteamID."""
    INVALID = 0
    INDIVIDUAL = 1
    MULTISEAT = 2
    GAME_SERVER = 3
    ANON_GAME_SERVER = 4
    PENDING = 5
    CONTENT_SERVER = 6
    CLAN = 7
    CHAT = 8
    ANON_USER = 10


# Steam3 letters as they appear in console output
_TYPE_LETTERS = {
    "I": SteamAccountType.INVALID,
    "U": SteamAccountType.INDIVIDUAL,
    "M": SteamAccountType.MULTISEAT,
    "G": SteamAccountType.GAME_SERVER,
    "A": SteamAccountType.ANON_GAME_SERVER,
    "P": SteamAccountType.PENDING,
    "C": SteamAccountType.CONTENT_SERVER,
    "g": SteamAccountType.CLAN,
    "T": SteamAccountType.CHAT,
    "a": SteamAccountType.ANON_USER,
}
_LETTERS_BY_TYPE = {v: k for k, v in _TYPE_LETTERS.items()}

STEAM3_PATTERN = re.compile(r'^\[([A-Za-z]):(\d+):(\d+)(?::(\d+))?\]$')
STEAM2_PATTERN = re.compile(r'^STEAM_(\d+):([01]):(\d+)$')

DEFAULT_INSTANCE = 1


@dataclass(frozen=True, order=True)
class SteamID:
    """
    Immutable 64-bit Steam identity.

    Equality, hashing and ordering all use the packed 64-bit value, so a
    SteamID can be used directly as a dictionary key.
    """

    id64: int

    def __post_init__(self):
        if not 0 <= self.id64 < (1 << 64):
            raise ValueError(f"SteamID out of 64-bit range: {self.id64}")

    @classmethod
    def from_parts(cls, account_id: int, universe: int = 1,
                   account_type: SteamAccountType = SteamAccountType.INDIVIDUAL,
                   instance: int = DEFAULT_INSTANCE) -> "SteamID":
        """
        Pack the four SteamID fields into one 64-bit value.

        Raises:
            ValueError: If a field does not fit its bit width
        """
        for field_name, value, bits in (("account_id", account_id, 32), ("instance", instance, 20),
                                        ("universe", universe, 8)):
            if not 0 <= value < (1 << bits):
                raise ValueError(f"SteamID {field_name} out of range: {value}")

        return cls((universe << 56) | (int(account_type) << 52) | (instance << 32) | account_id)

    @classmethod
    def parse(cls, text: str) -> "SteamID":
        """
        Parse a SteamID from Steam3, Steam2 or 64-bit decimal text.

        Args:
            text: e.g. "[U:1:123456]", "STEAM_0:0:61728" or "76561197960389184"

        Returns:
            The parsed SteamID

        Raises:
            ValueError: If the text is not a recognisable SteamID
        """
        text = text.strip()

        match = STEAM3_PATTERN.match(text)
        if match:
            letter, universe, account_id, instance = match.groups()
            if letter not in _TYPE_LETTERS:
                raise ValueError(f"Unknown Steam3 account type letter in {text!r}")
            account_type = _TYPE_LETTERS[letter]
            if instance is None:
                instance = DEFAULT_INSTANCE if account_type == SteamAccountType.INDIVIDUAL else 0
            return cls.from_parts(int(account_id), int(universe), account_type, int(instance))

        match = STEAM2_PATTERN.match(text)
        if match:
            universe, low_bit, high_bits = (int(g) for g in match.groups())
            # STEAM_0 is a legacy alias for the public universe
            return cls.from_parts((high_bits << 1) | low_bit, universe or 1)

        if text.isdigit():
            return cls(int(text))

        raise ValueError(f"Unrecognised SteamID format: {text!r}")

    @property
    def account_id(self) -> int:
        return self.id64 & 0xFFFFFFFF

    @property
    def instance(self) -> int:
        return (self.id64 >> 32) & 0xFFFFF

    @property
    def account_type(self) -> SteamAccountType:
        try:
            return SteamAccountType((self.id64 >> 52) & 0xF)
        except ValueError:
            return SteamAccountType.INVALID

    @property
    def universe(self) -> int:
        return (self.id64 >> 56) & 0xFF

    def is_valid(self) -> bool:
        return self.account_type != SteamAccountType.INVALID and self.universe != 0

    def steam3(self) -> str:
        letter = _LETTERS_BY_TYPE.get(self.account_type, "I")
        if self.account_type == SteamAccountType.INDIVIDUAL and self.instance == DEFAULT_INSTANCE:
            return f"[{letter}:{self.universe}:{self.account_id}]"
        if self.instance:
            return f"[{letter}:{self.universe}:{self.account_id}:{self.instance}]"
        return f"[{letter}:{self.universe}:{self.account_id}]"

    def __str__(self) -> str:
        return self.steam3()

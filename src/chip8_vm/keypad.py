"""Keypad: 16-key CHIP-8 input state and host key translation.

CHIP-8 keypad       Host keys
    1 2 3 C           1 2 3 4
    4 5 6 D           q w e r
    7 8 9 E           a s d f
    A 0 B F           z x c v

The input collaborator writes; the interpreter only reads.
"""

from typing import Dict, List, Optional

from .errors import InvalidKeyError

KEY_COUNT = 16

KEYMAP: Dict[str, int] = {
    "1": 0x1, "2": 0x2, "3": 0x3, "4": 0xC,
    "q": 0x4, "w": 0x5, "e": 0x6, "r": 0xD,
    "a": 0x7, "s": 0x8, "d": 0x9, "f": 0xE,
    "z": 0xA, "x": 0x0, "c": 0xB, "v": 0xF,
}


class Keypad:
    """Pressed/released state of the 16 CHIP-8 keys."""

    def __init__(self, keymap: Optional[Dict[str, int]] = None):
        self._state = [False] * KEY_COUNT
        self.keymap = dict(keymap or KEYMAP)

    def _check(self, key: int) -> int:
        if not 0 <= key < KEY_COUNT:
            raise IndexError(f"Invalid key: 0x{key:X}")
        return key

    def press(self, key: int) -> None:
        self._state[self._check(key)] = True

    def release(self, key: int) -> None:
        self._state[self._check(key)] = False

    def is_pressed(self, key: int) -> bool:
        """Query a key by CHIP-8 code.

        Raises:
            InvalidKeyError: If key is outside 0x0-0xF
        """
        if not 0 <= key < KEY_COUNT:
            raise InvalidKeyError(key)
        return bool(self._state[key])

    def process_event(self, host_key: str, is_down: bool) -> bool:
        """Translate a host key event into keypad state.

        Args:
            host_key: Host key name (case insensitive, e.g. "q")
            is_down: True on press, False on release

        Returns:
            True if the key is mapped, False if it was ignored
        """
        key = self.keymap.get(host_key.lower())
        if key is None:
            return False
        self._state[key] = is_down
        return True

    def lowest_pressed(self) -> Optional[int]:
        """Lowest-indexed pressed key, or None when no key is down."""
        for key, down in enumerate(self._state):
            if down:
                return key
        return None

    def pressed_keys(self) -> List[int]:
        return [key for key, down in enumerate(self._state) if down]

    def reset(self) -> None:
        self._state = [False] * KEY_COUNT

"""Opaque holder for key material.

A :class:`Secret` never renders its contents through ``repr``/``str``,
so a stray log call or traceback cannot leak an encryption key or a
decrypted private key.
"""

from __future__ import annotations


class Secret:
    """Wrap a secret value; call :meth:`reveal` to get it back."""

    __slots__ = ("_value",)

    def __init__(self, value: str | bytes) -> None:
        self._value = value

    def reveal(self) -> str | bytes:
        return self._value

    def __repr__(self) -> str:
        return "Secret('**********')"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Secret):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)

    def __bool__(self) -> bool:
        return bool(self._value)

"""Exceptions raised by the chix8 engine and its host interfaces."""

from typing import Any, Optional

from chix8.constants import Fault


class Chip8Error(Exception):
    """Base exception for all chix8 errors."""

    def __init__(
        self,
        message: str,
        pc: Optional[int] = None,
        opcode: Optional[int] = None,
        state: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.pc = pc
        self.opcode = opcode
        self.state = state

    def to_dict(self) -> dict:
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "pc": self.pc,
            "opcode": self.opcode,
        }


class EngineError(Chip8Error):
    """Error raised by a single execution step.

    ``state`` holds the machine state after the failed step: the fetched state
    for a decode error, the untouched pre-step state for everything else.
    """
    fault = Fault.NONE


class DecodeError(EngineError):
    """Unrecognized opcode bit pattern."""
    fault = Fault.DECODE


class StackOverflow(EngineError):
    """Call depth would exceed the stack capacity."""
    fault = Fault.STACK_OVERFLOW


class StackUnderflow(EngineError):
    """Return with an empty call stack."""
    fault = Fault.STACK_UNDERFLOW


class MemoryOutOfBounds(EngineError):
    """Effective address reaches or exceeds the end of memory."""
    fault = Fault.MEMORY_OUT_OF_BOUNDS

    def __init__(self, message: str, address: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.address = address

    def to_dict(self) -> dict:
        info = super().to_dict()
        info["address"] = self.address
        return info


class InvalidKeyIndex(Chip8Error):
    """Key index outside 0-15 passed to the key-input interface."""


class RomTruncatedWarning(UserWarning):
    """Program image did not fit in program memory and was cut short."""


FAULT_ERRORS = {
    error.fault: error
    for error in (DecodeError, StackOverflow, StackUnderflow, MemoryOutOfBounds)
}

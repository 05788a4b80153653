"""
Keyboard commands for the calibration/estimation screen.

Collecting:  Enter confirm, Esc undo, Space capture, r reset, 0-9 target distance
Finalized:   Esc quit, r reset, g graphs
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from DualCamTracker.calibration.session import CalibrationSession, SessionState
from DualCamTracker.calibration.store import EmptyStoreError

log = logging.getLogger(__name__)

KEY_ENTER = 13
KEY_ESC = 27
KEY_SPACE = 32


class Command(Enum):
    CONFIRM = "confirm"
    UNDO = "undo"
    CAPTURE = "capture"
    RESET = "reset"
    SELECT_DISTANCE = "select_distance"
    GRAPH = "graph"
    QUIT = "quit"


@dataclass
class KeyEvent:
    command: Command
    digit: Optional[int] = None


def command_for_key(key: int, state: SessionState) -> Optional[KeyEvent]:
    if key is None or key < 0:
        return None
    key &= 0xFF
    if key in (10, KEY_ENTER):
        return KeyEvent(Command.CONFIRM) if state is SessionState.COLLECTING else None
    if key == KEY_ESC:
        return KeyEvent(Command.UNDO) if state is SessionState.COLLECTING else KeyEvent(Command.QUIT)
    if key == ord("r"):
        return KeyEvent(Command.RESET)
    if state is SessionState.COLLECTING:
        if key == KEY_SPACE:
            return KeyEvent(Command.CAPTURE)
        if ord("0") <= key <= ord("9"):
            return KeyEvent(Command.SELECT_DISTANCE, digit=key - ord("0"))
    elif key == ord("g"):
        return KeyEvent(Command.GRAPH)
    return None


def apply_command(event: KeyEvent, session: CalibrationSession) -> bool:
    """Apply session-level commands; returns True when the event was consumed.

    CAPTURE, GRAPH and QUIT need the tracking loop and are left to the caller.
    An undo with nothing collected is reported and ignored.
    """
    if event.command is Command.CONFIRM:
        session.confirm()
        return True
    if event.command is Command.UNDO:
        try:
            session.undo()
        except EmptyStoreError:
            log.warning("nothing to undo")
        return True
    if event.command is Command.RESET:
        session.reset()
        return True
    if event.command is Command.SELECT_DISTANCE and event.digit is not None:
        session.select_target_digit(event.digit)
        return True
    return False

#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Color flows: a sequence of timed transitions that an appliance runs on its own after a
start_cf command.

A flow is sent as three start_cf params:

    [count, action, "<duration>,<mode>,<value>,<brightness>,<duration>,<mode>,..."]
"""

from __future__ import annotations

from enum import Enum

from .internal_types import *
from .color import rgb_to_yeelight

MIN_TRANSITION_DURATION = 50
"""The shortest transition, in milliseconds, that appliances accept."""

class FlowAction(Enum):
    """What the appliance does after the flow ends."""
    RECOVER = 0
    """Return to the state before the flow started."""
    STAY = 1
    """Stay in the state at the end of the flow."""
    TURN_OFF = 2

class FlowTransitionMode(Enum):
    COLOR = 1
    COLOR_TEMPERATURE = 2
    SLEEP = 7

class FlowTransition:
    """One step of a flow."""

    duration: int
    """Milliseconds; at least MIN_TRANSITION_DURATION."""

    mode: FlowTransitionMode

    value: int
    """An RGB integer for COLOR, a color temperature in Kelvin for COLOR_TEMPERATURE, ignored for SLEEP."""

    brightness: int
    """1-100, or -1 to leave the brightness unchanged. Ignored for SLEEP."""

    def __init__(self, duration: int, mode: FlowTransitionMode, value: int=0, brightness: int=-1):
        if duration < MIN_TRANSITION_DURATION:
            raise ValueError(f"Flow transition duration must be at least {MIN_TRANSITION_DURATION}ms, got {duration}")
        if not (brightness == -1 or 1 <= brightness <= 100):
            raise ValueError(f"Flow transition brightness must be -1 or in the range 1-100, got {brightness}")
        self.duration = duration
        self.mode = mode
        self.value = value
        self.brightness = brightness

    @classmethod
    def rgb(cls, duration: int, red: int, green: int, blue: int, brightness: int=-1) -> FlowTransition:
        return cls(duration, FlowTransitionMode.COLOR, rgb_to_yeelight(red, green, blue), brightness)

    @classmethod
    def temperature(cls, duration: int, kelvin: int, brightness: int=-1) -> FlowTransition:
        return cls(duration, FlowTransitionMode.COLOR_TEMPERATURE, kelvin, brightness)

    @classmethod
    def sleep(cls, duration: int) -> FlowTransition:
        return cls(duration, FlowTransitionMode.SLEEP)

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.duration, self.mode.value, self.value, self.brightness)

    def __str__(self) -> str:
        return f"FlowTransition({self.duration}ms {self.mode.name} value={self.value} brightness={self.brightness})"

    def __repr__(self) -> str:
        return str(self)

class Flow:
    """A color flow to be started with Yeelight.start_flow()."""

    count: int
    """The number of transitions to run before stopping; 0 runs forever."""

    action: FlowAction
    transitions: List[FlowTransition]

    def __init__(
            self,
            transitions: Iterable[FlowTransition],
            count: int=0,
            action: FlowAction=FlowAction.RECOVER,
          ):
        self.transitions = list(transitions)
        if len(self.transitions) == 0:
            raise ValueError("A flow needs at least one transition")
        if count < 0:
            raise ValueError(f"Flow count must not be negative, got {count}")
        self.count = count
        self.action = action

    @property
    def expression(self) -> str:
        return ",".join(str(x) for t in self.transitions for x in t.as_tuple())

    def as_start_params(self) -> List[Jsonable]:
        """The params of the start_cf command that runs this flow."""
        return [self.count, self.action.value, self.expression]

    def __str__(self) -> str:
        return f"Flow(count={self.count}, action={self.action.name}, transitions={self.transitions})"

    def __repr__(self) -> str:
        return str(self)

"""Simple finite state machine utility for enforcing allowed status transitions.

One validator instance per lifecycle (orders, delivery assignments).
Usage:
    from distribution.utils.fsm import TransitionValidator
    ASSIGNMENT_FSM = TransitionValidator({
        AssignmentStatus.ASSIGNED: {AssignmentStatus.ACCEPTED},
        AssignmentStatus.ACCEPTED: set(),
    }, field_name='assignment_status')
    ASSIGNMENT_FSM.assert_can_transition(current_status, target_status)

Raises InvalidState if the edge is not in the graph.
"""
from __future__ import annotations
from enum import Enum
from typing import Dict, Iterable, Set, Union
from distribution.errors import InvalidState

StatusLike = Union[str, Enum]


def _key(status: StatusLike) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class TransitionValidator:
    def __init__(self, graph: Dict[StatusLike, Iterable[StatusLike]], field_name: str = 'status'):
        self.graph: Dict[str, Set[str]] = {_key(k): {_key(t) for t in v} for k, v in graph.items()}
        self.field_name = field_name

    @property
    def states(self):
        return list(self.graph.keys())

    def can_transition(self, current: StatusLike, target: StatusLike) -> bool:
        return _key(target) in self.graph.get(_key(current), set())

    def assert_can_transition(self, current: StatusLike, target: StatusLike):
        if not self.can_transition(current, target):
            raise InvalidState(
                f"Invalid {self.field_name} transition {_key(current)} -> {_key(target)}",
                current=_key(current),
                target=_key(target),
            )
        return True

    def is_terminal(self, status: StatusLike) -> bool:
        return not self.graph.get(_key(status))

__all__ = ['TransitionValidator']

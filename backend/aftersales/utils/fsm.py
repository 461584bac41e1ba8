"""Finite state machine utility for enforcing allowed status transitions.

A validator holds one edge graph. The request lifecycle keeps one graph per actor
tier, so "who may move where" is data rather than nested conditionals:
    from aftersales.utils.fsm import TransitionValidator
    TECHNICIAN_FSM = TransitionValidator({
        'NEW': {'ASSIGNED'},
        'IN_REPAIR': {'COMPLETED'},
    })
    TECHNICIAN_FSM.assert_can_transition(current_status, target_status)

Raises ForbiddenError (or the configured error class) if the edge is absent.
"""
from __future__ import annotations
from typing import Dict, Iterable, Set, Type
from aftersales.errors import ForbiddenError


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status', error_cls: Type[Exception] = ForbiddenError):
        self.graph = {_plain(k): {_plain(t) for t in v} for k, v in graph.items()}
        self.field_name = field_name
        self.error_cls = error_cls

    @classmethod
    def from_targets(cls, sources: Iterable[str], targets: Iterable[str], **kwargs) -> 'TransitionValidator':
        """Graph where every source may reach every target."""
        targets = set(targets)
        return cls({s: targets for s in sources}, **kwargs)

    def can_transition(self, current: str, target: str) -> bool:
        return _plain(target) in self.graph.get(_plain(current), set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise self.error_cls(f"Invalid {self.field_name} transition {_plain(current)} -> {_plain(target)}")
        return True


def _plain(v) -> str:
    return getattr(v, 'value', v)


__all__ = ['TransitionValidator']

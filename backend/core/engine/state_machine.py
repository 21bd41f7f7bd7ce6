"""
core/engine/state_machine.py

状态机引擎 - 基于转换表校验状态变更

状态本身保存在持久化行上，状态机只负责回答
"从 A 能否到 B"，不持有当前状态。
"""
from typing import Dict, List, Optional, Tuple, Union
from dataclasses import dataclass, field
from enum import Enum
import logging

logger = logging.getLogger(__name__)

State = Union[str, Enum]


def _key(state: State) -> str:
    """枚举与字符串统一为字符串键"""
    return state.value if isinstance(state, Enum) else str(state)


@dataclass(frozen=True)
class StateTransition:
    """
    状态转换定义

    Attributes:
        from_state: 源状态
        to_state: 目标状态
        trigger: 触发动作（仅用于日志）
    """

    from_state: str
    to_state: str
    trigger: Optional[str] = None


@dataclass
class StateMachineConfig:
    """
    状态机配置

    Attributes:
        name: 状态机名称
        states: 所有状态的列表
        transitions: 转换列表
        initial_state: 初始状态
    """

    name: str
    states: List[str]
    transitions: List[StateTransition]
    initial_state: str
    metadata: Dict[str, str] = field(default_factory=dict)


class InvalidTransitionError(Exception):
    """转换表中不存在的转换"""

    def __init__(self, machine: str, current: str, attempted: str, allowed: List[str]):
        self.machine = machine
        self.current = current
        self.attempted = attempted
        self.allowed = allowed
        super().__init__(f"{machine}: cannot transition from {current} to {attempted}")


class StateMachine:
    """
    状态机

    Example:
        >>> machine = StateMachine.from_table("Reservation", {
        ...     "pending": ["confirmed", "cancelled"],
        ...     "confirmed": ["cancelled"],
        ...     "cancelled": [],
        ... }, initial_state="pending")
        >>> machine.is_valid_transition("pending", "confirmed")
        True
    """

    def __init__(self, config: StateMachineConfig):
        self._config = config
        self._transition_map: Dict[str, Dict[str, StateTransition]] = {
            _key(s): {} for s in config.states
        }

        for t in config.transitions:
            source, target = _key(t.from_state), _key(t.to_state)
            if source not in self._transition_map or target not in self._transition_map:
                raise ValueError(f"{config.name}: unknown state in transition {source} -> {target}")
            self._transition_map[source][target] = t

    @classmethod
    def from_table(
        cls,
        name: str,
        table: Dict[State, List[State]],
        initial_state: State,
    ) -> "StateMachine":
        """从 {源状态: [目标状态]} 表构建"""
        transitions = [
            StateTransition(from_state=_key(source), to_state=_key(target))
            for source, targets in table.items()
            for target in targets
        ]
        return cls(StateMachineConfig(
            name=name,
            states=[_key(s) for s in table.keys()],
            transitions=transitions,
            initial_state=_key(initial_state),
        ))

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def config(self) -> StateMachineConfig:
        return self._config

    @property
    def states(self) -> List[str]:
        return list(self._transition_map.keys())

    @property
    def final_states(self) -> List[str]:
        """没有出边的状态"""
        return [s for s, targets in self._transition_map.items() if not targets]

    def allowed_targets(self, current: State) -> List[str]:
        return list(self._transition_map.get(_key(current), {}).keys())

    def is_valid_transition(self, current: State, target: State) -> bool:
        return _key(target) in self._transition_map.get(_key(current), {})

    def validate(self, current: State, target: State) -> StateTransition:
        """
        校验转换

        Raises:
            InvalidTransitionError: 转换不在表中
        """
        transition = self._transition_map.get(_key(current), {}).get(_key(target))
        if transition is None:
            logger.warning(
                f"Invalid transition: {self.name} {_key(current)} -> {_key(target)}"
            )
            raise InvalidTransitionError(
                self.name, _key(current), _key(target), self.allowed_targets(current)
            )
        return transition

    def edges(self) -> List[Tuple[str, str]]:
        return [
            (source, target)
            for source, targets in self._transition_map.items()
            for target in targets
        ]


__all__ = [
    "StateTransition",
    "StateMachineConfig",
    "InvalidTransitionError",
    "StateMachine",
]

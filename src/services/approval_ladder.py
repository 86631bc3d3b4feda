"""
Approval Ladder
The ordered, configured sequence of approval levels a request must clear
"""

from typing import List, Optional

from src.config.workflow import WorkflowConfig
from src.models.approval import ApprovalLevel


class ApprovalLadder:
    """Routing lookups over the configured ladder"""

    def __init__(self, config: WorkflowConfig):
        self._levels: List[ApprovalLevel] = list(config.approval_ladder)

    @property
    def levels(self) -> List[ApprovalLevel]:
        return list(self._levels)

    @property
    def first_level(self) -> ApprovalLevel:
        return self._levels[0]

    @property
    def terminal_level(self) -> ApprovalLevel:
        return self._levels[-1]

    def __contains__(self, level: ApprovalLevel) -> bool:
        return level in self._levels

    def __len__(self) -> int:
        return len(self._levels)

    def position(self, level: ApprovalLevel) -> int:
        """
        Zero-based index of a level in the ladder

        Raises:
            ValueError: If the level is not part of the ladder
        """
        if level not in self._levels:
            raise ValueError(f"{level.value} is not part of the approval ladder")
        return self._levels.index(level)

    def sequence(self, level: ApprovalLevel) -> int:
        """One-based sequence number stored on approval steps"""
        return self.position(level) + 1

    def next_level(self, level: ApprovalLevel) -> Optional[ApprovalLevel]:
        """Level following `level`, or None when `level` is terminal"""
        index = self.position(level)
        if index + 1 >= len(self._levels):
            return None
        return self._levels[index + 1]

    def is_terminal(self, level: ApprovalLevel) -> bool:
        return self.position(level) == len(self._levels) - 1

"""
Case card grouping (stage 2).

GroupingStrategy is the seam for clustering cards by legal question before
the skeleton is built. SingleClusterGrouping places every card in one
cluster and returns the input unchanged.
"""

from abc import ABC, abstractmethod

from .result_types import CaseCard


class GroupingStrategy(ABC):
    """Abstract base class for case card grouping."""

    @abstractmethod
    def group(self, cards: list[CaseCard]) -> list[CaseCard]:
        """
        Order or filter cards for the skeleton stage.

        Args:
            cards: All case cards of the run, in document order

        Returns:
            Cards to pass to stage 3
        """


class SingleClusterGrouping(GroupingStrategy):
    """All cards form one cluster."""

    def group(self, cards: list[CaseCard]) -> list[CaseCard]:
        return list(cards)

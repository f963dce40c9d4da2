"""
Confirmation of destructive actions.
"""

import logging
from typing import Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Given a message and the labels of the candidates, return the labels selected
Selector = Callable[[str, List[str]], List[str]]


def select_items(
    items: Sequence[T],
    label: Callable[[T], str],
    forced: Callable[[T], bool],
    select: Optional[Selector],
    message: str,
) -> List[T]:
    """
    Select the items to act on.

    Forced items are always selected, the others only when confirmed through
    ``select``. Without a selector, unconfirmed items are skipped.
    """
    selected = [item for item in items if forced(item)]
    to_confirm = [item for item in items if not forced(item)]
    if not to_confirm:
        return selected
    if select is None:
        for item in to_confirm:
            logger.info(f"Skipped {label(item)}: confirmation required")
        return selected
    confirmed = set(select(message, [label(item) for item in to_confirm]))
    selected.extend(item for item in to_confirm if label(item) in confirmed)
    return selected


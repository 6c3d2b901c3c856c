"""Advertisement-to-target matching logic."""

from __future__ import annotations

from collections.abc import Callable

from yudectl.core.model import Advertisement

TARGET_NAME = "Yudetamago config"


def matches_target(advertisement: Advertisement, target_name: str = TARGET_NAME) -> bool:
    local_name = advertisement.local_name
    if not local_name:
        return False
    return local_name.upper() == target_name.upper()


def name_filter(target_name: str = TARGET_NAME) -> Callable[[Advertisement], bool]:
    def _predicate(advertisement: Advertisement) -> bool:
        return matches_target(advertisement, target_name)

    return _predicate

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

logger = logging.getLogger(__name__)

USER_UNIT_LOOKUP = "user_unit_lookup"
GLOBAL_UNIT_LOOKUP = "global_unit_lookup"


@dataclass
class Capabilities:
    """Optional datastore features, probed lazily.

    A flag only ever goes from True to False: the first "table missing"
    error disables the feature for the lifetime of the process.
    """

    user_unit_lookup: bool = True
    global_unit_lookup: bool = True

    def enabled(self, name: str) -> bool:
        return bool(getattr(self, name))

    def disable(self, name: str, reason: str = "") -> None:
        if getattr(self, name):
            logger.warning("Disabling %s for this process: %s", name, reason or "backing table missing")
        setattr(self, name, False)


@lru_cache
def get_capabilities() -> Capabilities:
    return Capabilities()

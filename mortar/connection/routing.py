"""Master/slave slot selection.

Slots ``[0, master_num)`` are masters; the rest are slaves.  Every call
draws a master index first (used as the fallback target) and then the slot
that serves the request:

* writes and in-transaction reads go to the drawn master;
* with ``rw_separate``, plain reads go to ``slave_no`` if set, otherwise to a
  uniformly drawn slave;
* without ``rw_separate``, any host serves any request.
"""
from __future__ import annotations

import random
from dataclasses import dataclass

from mortar.schema.config import DatabaseConfig, DeployMode


@dataclass(frozen=True)
class Route:
    """Result of a slot selection.

    Attributes:
        slot: Node index that should serve the request.
        master: Master node index to fall back to when ``slot`` is
            unreachable.
    """

    slot: int
    master: int

    @property
    def has_fallback(self) -> bool:
        return self.slot != self.master


class Router:
    """Picks node indexes for a :class:`DatabaseConfig`.

    Args:
        config: The validated configuration.
        rng: Source of randomness; inject a seeded ``random.Random`` for
            reproducible routing.
    """

    def __init__(self, config: DatabaseConfig, rng: random.Random | None = None) -> None:
        self._config = config
        self._rng = rng or random.Random()

    def route(self, master: bool) -> Route:
        config = self._config
        if config.deploy is DeployMode.SINGLE:
            return Route(slot=0, master=0)
        hosts = config.host_count
        master_index = self._rng.randint(0, min(config.master_num, hosts) - 1)
        if not config.rw_separate:
            return Route(slot=self._rng.randint(0, hosts - 1), master=master_index)
        if master:
            return Route(slot=master_index, master=master_index)
        if config.slave_no is not None:
            return Route(slot=config.slave_no, master=master_index)
        if hosts <= config.master_num:
            # No slaves configured; reads share the masters.
            return Route(slot=master_index, master=master_index)
        return Route(
            slot=self._rng.randint(config.master_num, hosts - 1),
            master=master_index,
        )

    def select_slot(self, master: bool) -> int:
        """Return only the serving slot index for a request."""
        return self.route(master).slot

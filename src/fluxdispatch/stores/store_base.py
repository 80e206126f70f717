# src/fluxdispatch/stores/store_base.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fluxdispatch.core.dispatcher import Dispatcher
from fluxdispatch.core.log import get as get_logger
from fluxdispatch.core.metrics import inc

log = get_logger(__name__)


@dataclass
class StoreConfig:
    name: str
    depends_on: List[str] = field(default_factory=list)


class Store:
    """
    Owns a piece of state and exactly one dispatcher callback.

    The token returned by the dispatcher is kept as ``dispatch_token`` so
    other stores can wait on this one. ``deps`` maps the names listed in
    ``cfg.depends_on`` to the stores they refer to.
    """

    def __init__(self, cfg: StoreConfig, dispatcher: Dispatcher, deps: Optional[Dict[str, "Store"]] = None):
        self.cfg = cfg
        self.dispatcher = dispatcher
        self.deps: Dict[str, Store] = dict(deps or {})
        missing = [n for n in cfg.depends_on if n not in self.deps]
        if missing:
            raise ValueError(f"store {cfg.name!r}: unresolved dependencies {missing}")
        self.state: Dict[str, Any] = {}
        self.dispatch_token = dispatcher.register(self._on_dispatch)
        log.debug("[%s] registered token=%s deps=%s", cfg.name, self.dispatch_token, cfg.depends_on)

    @property
    def name(self) -> str:
        return self.cfg.name

    def _on_dispatch(self, payload: Any) -> None:
        inc("store_dispatch_total", 1, store=self.cfg.name)
        self.on_dispatch(payload)

    def on_dispatch(self, payload: Any) -> None:
        """Override me in subclasses."""
        pass

    def wait_for(self, *names: str) -> None:
        """Wait for the named dependencies, or all of them when none are given."""
        names = names or tuple(self.cfg.depends_on)
        self.dispatcher.wait_for([self.deps[n].dispatch_token for n in names])

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.state)

    def close(self) -> None:
        self.dispatcher.unregister(self.dispatch_token)

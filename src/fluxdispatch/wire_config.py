# src/fluxdispatch/wire_config.py
from __future__ import annotations
import importlib
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from fluxdispatch.core.dispatcher import DEFAULT_NAME, Dispatcher
from fluxdispatch.core.log import get as get_logger
from fluxdispatch.stores.store_base import Store, StoreConfig

log = get_logger(__name__)


def _imp(module: str, cls: str):
    mod = importlib.import_module(module)
    return getattr(mod, cls)


def build_from_dict(data: Dict[str, Any]) -> Tuple[Dispatcher, Dict[str, Store]]:
    """Build a dispatcher and its stores from an already-parsed config mapping."""
    disp_cfg = data.get("dispatcher") or {}
    dispatcher = Dispatcher(name=disp_cfg.get("name", DEFAULT_NAME))

    stores: Dict[str, Store] = {}
    for s in data.get("stores") or []:
        name = s["name"]
        if name in stores:
            raise ValueError(f"duplicate store name {name!r}")
        depends_on = list(s.get("depends_on") or [])
        unknown = [d for d in depends_on if d not in stores]
        if unknown:
            # stores register in file order, so dependencies must come first
            raise ValueError(f"store {name!r} depends on {unknown} which are not defined above it")

        StoreCls = _imp(s["module"], s["class"])
        cfg = StoreConfig(name=name, depends_on=depends_on)
        deps = {d: stores[d] for d in depends_on}
        stores[name] = StoreCls(cfg, dispatcher, deps=deps, **(s.get("cfg") or {}))

    log.info("wired dispatcher=%s stores=%s", dispatcher.name, list(stores))
    return dispatcher, stores


def build_from_yaml(yaml_path: str | Path) -> Tuple[Dispatcher, Dict[str, Store]]:
    """Read a wiring YAML file and build the dispatcher and stores it describes."""
    data = yaml.safe_load(Path(yaml_path).read_text(encoding="utf-8")) or {}
    return build_from_dict(data)

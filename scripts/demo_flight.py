import os
from pathlib import Path

from fluxdispatch.core import log
from fluxdispatch.core.contracts import Action
from fluxdispatch.core.metrics import force_emit
from fluxdispatch.stores.flight import CITY_UPDATE, COUNTRY_UPDATE
from fluxdispatch.wire_config import build_from_yaml

CONFIG = Path(__file__).resolve().parent.parent / "configs" / "flight.yaml"


def main():
    os.environ.setdefault("LOG_LEVEL", "INFO")
    log.setup()
    lg = log.get("demo.flight")

    dispatcher, stores = build_from_yaml(os.getenv("FLIGHT_CONFIG", str(CONFIG)))

    for action in (
        Action(COUNTRY_UPDATE, {"selected_country": "australia"}),
        Action(CITY_UPDATE, {"selected_city": "sydney"}),
        {"action_type": COUNTRY_UPDATE, "selected_country": "france"},
    ):
        dispatcher.dispatch(action)
        lg.info("after %s: %s", action["action_type"],
                {name: s.snapshot() for name, s in stores.items()})

    force_emit(logger=log.get("metrics"), json_mode=(os.getenv("LOG_JSON", "0") == "1"))


if __name__ == "__main__":
    main()

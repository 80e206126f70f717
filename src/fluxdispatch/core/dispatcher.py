# src/fluxdispatch/core/dispatcher.py
from __future__ import annotations

import itertools
from typing import Any, Dict, Iterable, List, Optional

from fluxdispatch.core import log
from fluxdispatch.core.contracts import Callback, Token, TokenStatus
from fluxdispatch.core.errors import (
    AlreadyDispatchingError,
    CircularDependencyError,
    InvalidTokenError,
    NotDispatchingError,
)
from fluxdispatch.core.metrics import Timer, gauge_set, inc

_PREFIX = "ID_"
DEFAULT_NAME = "fluxdispatch.dispatcher"


class Dispatcher:
    """
    Broadcast payloads to every registered callback.

    Unlike a topic bus there is no subscription filter: every payload reaches
    every callback. A callback may defer part of its work until other
    callbacks have run by calling ``wait_for()`` with their tokens:

        country_token = d.register(on_country)

        def on_city(payload):
            d.wait_for([country_token])   # on_country has now run
            ...

    Dispatching is synchronous and single-threaded. One dispatch at a time;
    ``wait_for`` is the only re-entrant path.

    Metrics are labelled with ``name``; give each live dispatcher its own
    name or their gauges overwrite each other.
    """

    def __init__(self, name: str = DEFAULT_NAME):
        self.name = name
        self.l = log.get(self.name)
        self._callbacks: Dict[Token, Callback] = {}
        self._ids = itertools.count(1)
        # session state, only meaningful while _dispatching
        self._status: Dict[Token, TokenStatus] = {}
        self._payload: Any = None
        self._dispatching = False

    # -------------------- registry --------------------
    def register(self, callback: Callback) -> Token:
        """Register ``callback`` to receive every payload; returns its token."""
        token = f"{_PREFIX}{next(self._ids)}"
        self._callbacks[token] = callback
        self.l.debug("registered token=%s fn=%s", token, getattr(callback, "__name__", repr(callback)))
        gauge_set("dispatcher_callbacks", float(len(self._callbacks)), dispatcher=self.name)
        return token

    def unregister(self, token: Token) -> None:
        """Remove a callback. Unknown tokens are ignored."""
        if self._callbacks.pop(token, None) is None:
            return
        self.l.debug("unregistered token=%s", token)
        gauge_set("dispatcher_callbacks", float(len(self._callbacks)), dispatcher=self.name)

    def tokens(self) -> List[Token]:
        return list(self._callbacks)

    def __len__(self) -> int:
        return len(self._callbacks)

    def __contains__(self, token: object) -> bool:
        return token in self._callbacks

    # -------------------- dispatch --------------------
    def is_dispatching(self) -> bool:
        return self._dispatching

    @property
    def payload(self) -> Any:
        """Payload of the active dispatch, None when idle."""
        return self._payload

    def dispatch(self, payload: Any) -> None:
        """Deliver ``payload`` to every registered callback.

        The first error raised by a callback (or by the dispatcher's own
        checks) aborts the dispatch: remaining callbacks are skipped and the
        error is re-raised once the dispatcher is idle again.
        """
        if self._dispatching:
            raise AlreadyDispatchingError()

        self._start_dispatching(payload)
        try:
            with Timer("dispatch_latency_ms", dispatcher=self.name):
                for token in list(self._callbacks):
                    if token not in self._callbacks:
                        continue  # unregistered by an earlier callback
                    if self._status.get(token) is TokenStatus.NOT_STARTED:
                        self._invoke_callback(token)
        except Exception as e:
            inc("dispatch_errors_total", 1, dispatcher=self.name, error=type(e).__name__)
            self.l.warning("dispatch aborted: %s: %s", type(e).__name__, e)
            raise
        else:
            inc("dispatch_total", 1, dispatcher=self.name)
        finally:
            self._stop_dispatching()

    def wait_for(self, tokens: Iterable[Token]) -> None:
        """Run the callbacks for ``tokens`` (in order) before continuing.

        Must be called from a callback during a dispatch. Callbacks that
        already ran in this dispatch are not run again.
        """
        if not self._dispatching:
            raise NotDispatchingError()
        if isinstance(tokens, str):
            tokens = [tokens]
        for token in tokens:
            self._invoke_callback(token)

    # -------------------- internals --------------------
    def _invoke_callback(self, token: Token) -> None:
        callback: Optional[Callback] = self._callbacks.get(token)
        if callback is None:
            raise InvalidTokenError(token)

        status = self._status.get(token, TokenStatus.NOT_STARTED)
        if status is TokenStatus.HANDLED:
            return
        if status is TokenStatus.PENDING:
            raise CircularDependencyError(token)

        self._status[token] = TokenStatus.PENDING
        inc("callback_invocations_total", 1, dispatcher=self.name)
        callback(self._payload)
        self._status[token] = TokenStatus.HANDLED

    def _start_dispatching(self, payload: Any) -> None:
        self._status = {token: TokenStatus.NOT_STARTED for token in self._callbacks}
        self._payload = payload
        self._dispatching = True
        self.l.debug("dispatch start callbacks=%d", len(self._status))

    def _stop_dispatching(self) -> None:
        self._status = {}
        self._payload = None
        self._dispatching = False

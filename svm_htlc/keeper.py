"""
Cancellation keeper for svm-htlc.

Watches for HTLCs past their cancellation deadline and cancels them:
- the principal goes back to the recorded source
- the keeper collects the safety deposit

Runs one scan on demand (run_once) or as a background thread.
"""

import logging
import threading
from typing import Callable, List, Optional

from .errors import HTLCError, LedgerError
from .ledger.keys import Keypair, Pubkey
from .program import STATUS_ACTIVE, HTLCProgram, HTLCRecord, InvocationContext

log = logging.getLogger(__name__)


class CancellationKeeper:
    """
    Background service that refunds expired HTLCs.

    Callbacks:
    - on_cancelled(address, record): after each successful cancel
    """

    def __init__(self, program: HTLCProgram, keypair: Keypair, poll_interval: float = 10.0):
        self.program = program
        self.keypair = keypair
        self.poll_interval = poll_interval

        self.on_cancelled: Optional[Callable[[Pubkey, HTLCRecord], None]] = None

        # Stats
        self.cancelled_count = 0
        self.deposits_collected = 0

        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> List[Pubkey]:
        """
        Cancel every active HTLC whose cancellation deadline has passed.

        A failure on one HTLC is logged and the scan moves on.

        Returns:
            Addresses cancelled in this pass
        """
        now = self.program.bank.unix_timestamp()
        ctx = InvocationContext(signer=self.keypair.pubkey)
        cancelled = []

        for address, record in self.program.list_htlcs(status=STATUS_ACTIVE):
            if not record.can_cancel_at(now):
                continue
            try:
                self.program.cancel(ctx, address, record.src_address)
            except (HTLCError, LedgerError) as e:
                log.warning(f"Keeper could not cancel {address}: {type(e).__name__}: {e}")
                continue

            cancelled.append(address)
            self.cancelled_count += 1
            self.deposits_collected += record.safety_deposit
            log.info(f"Keeper cancelled {address}, collected {record.safety_deposit} lamports")

            if self.on_cancelled:
                try:
                    self.on_cancelled(address, record)
                except Exception as e:
                    log.error(f"on_cancelled callback failed for {address}: {e}")

        return cancelled

    def start(self):
        """Start keeper in background thread."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._keeper_loop, daemon=True)
        self._thread.start()
        log.info(f"Cancellation keeper started (poll every {self.poll_interval}s)")

    def stop(self):
        """Stop keeper."""
        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        log.info("Cancellation keeper stopped")

    @property
    def running(self) -> bool:
        return self._running

    def _keeper_loop(self):
        """Main keeper loop."""
        while self._running:
            try:
                self.run_once()
            except Exception as e:
                log.error(f"Keeper loop error: {e}")

            self._stop_event.wait(self.poll_interval)

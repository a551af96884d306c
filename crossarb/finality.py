# crossarb/finality.py
"""
Transaction Finality Poller
Polls a chain for the status of one submitted transaction until it
confirms, fails on-chain, expires, or the time budget runs out.

Three distinct unhappy endings, because recovery differs:
- failed:    the chain rejected it        -> do not retry
- expired:   height passed its last valid -> resubmit with a fresh reference
- timed out: we stopped waiting           -> the same reference may still land
"""

import logging
import time
from typing import Callable, Optional

from crossarb.config import FINALITY_HEIGHT_CHECK_SECONDS, FINALITY_POLL_INTERVAL_SECONDS
from crossarb.errors import ConnectivityError, TxExpiredError, TxFailedError, TxTimeoutError
from crossarb.interfaces import FinalityQuery
from crossarb.models import CommitmentLevel, OutcomeState, TransactionOutcome, TxStatus

logger = logging.getLogger(__name__)


class TransactionFinalityPoller:
    """
    Status is queried every poll_interval; chain height on the slower
    height_check_interval cadence. Transient query failures are skipped and
    retried on the next tick.
    """

    def __init__(
        self,
        poll_interval: float = FINALITY_POLL_INTERVAL_SECONDS,
        height_check_interval: float = FINALITY_HEIGHT_CHECK_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.poll_interval = poll_interval
        self.height_check_interval = height_check_interval
        self._clock = clock
        self._sleep = sleep

    def poll(
        self,
        query: FinalityQuery,
        tx_ref: str,
        expiry_height: int,
        desired_level: CommitmentLevel = CommitmentLevel.CONFIRMED,
        timeout: float = 30.0,
    ) -> TransactionOutcome:
        """Run the state machine and return its terminal outcome"""
        start = self._clock()
        last_height_check: Optional[float] = None
        polls = 0

        while self._clock() - start < timeout:
            polls += 1

            # 1. Status by reference
            try:
                status = query.get_status(tx_ref)
            except ConnectivityError as e:
                logger.debug(f"[{tx_ref}] status query failed, retrying: {e}")
                status = None

            if status is not None:
                if status.state == TxStatus.FAILED:
                    logger.warning(f"[{tx_ref}] failed on-chain: {status.error}")
                    return TransactionOutcome(
                        OutcomeState.FAILED, tx_ref, reason=status.error or "unknown", polls=polls
                    )
                if status.state == TxStatus.CONFIRMED and status.level >= desired_level:
                    logger.info(f"[{tx_ref}] confirmed at '{status.level.name.lower()}'")
                    return TransactionOutcome(OutcomeState.CONFIRMED, tx_ref, polls=polls)

            # 2. Reference-block expiry on the slower cadence
            now = self._clock()
            if last_height_check is None or now - last_height_check >= self.height_check_interval:
                try:
                    height = query.get_current_height()
                except ConnectivityError as e:
                    logger.debug(f"[{tx_ref}] height query failed, retrying: {e}")
                else:
                    if height > expiry_height:
                        logger.warning(
                            f"[{tx_ref}] expired: height {height} > last valid {expiry_height}"
                        )
                        return TransactionOutcome(
                            OutcomeState.EXPIRED,
                            tx_ref,
                            reason=f"height {height} > {expiry_height}",
                            polls=polls,
                            height=height,
                        )
                    last_height_check = now

            self._sleep(self.poll_interval)

        logger.warning(f"[{tx_ref}] confirmation timed out after {timeout:.1f}s ({polls} polls)")
        return TransactionOutcome(
            OutcomeState.TIMED_OUT, tx_ref, reason=f"timeout {timeout:.1f}s", polls=polls
        )

    def await_confirmation(
        self,
        query: FinalityQuery,
        tx_ref: str,
        expiry_height: int,
        desired_level: CommitmentLevel = CommitmentLevel.CONFIRMED,
        timeout: float = 30.0,
    ) -> TransactionOutcome:
        """
        Same as poll() but raises for every outcome except CONFIRMED:
        TxFailedError, TxExpiredError or TxTimeoutError.
        """
        outcome = self.poll(query, tx_ref, expiry_height, desired_level, timeout)

        if outcome.state is OutcomeState.CONFIRMED:
            return outcome
        if outcome.state is OutcomeState.FAILED:
            raise TxFailedError(tx_ref, outcome.reason)
        if outcome.state is OutcomeState.EXPIRED:
            raise TxExpiredError(tx_ref, expiry_height, outcome.height)
        raise TxTimeoutError(tx_ref, timeout)

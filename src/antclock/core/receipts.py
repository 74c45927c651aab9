import hashlib
import json
import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional

import numpy as np

from .fields import SystemState

logger = logging.getLogger('antclock.receipts')

GENESIS_HASH = "0" * 64


def state_hash(state: SystemState) -> str:
    """sha256 over the raw bytes of every bulk sequence and interface scalar."""
    h = hashlib.sha256()
    for _, arr in state.fields.items():
        h.update(np.ascontiguousarray(arr).tobytes())
    scalars = state.interface.scalars()
    h.update(np.array([scalars[k] for k in sorted(scalars)] + [state.t, state.L],
                      dtype=np.float64).tobytes())
    return h.hexdigest()


@dataclass(frozen=True)
class StepReceipt:
    step: int
    attempt: int
    event: str
    t: float
    dt: float
    tau_sched: float
    residual: float
    reasons: tuple
    state_hash: str
    prev_receipt_hash: str
    receipt_hash: str

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['reasons'] = list(self.reasons)
        return d


class ReceiptChain:
    """Hash-chained audit trail of step attempts, kept in memory.

    Receipts carry no timestamps so identical runs produce identical chains.
    Events: STEP_ACCEPT, STEP_ACCEPT_FLAGGED, STEP_REJECT.
    """

    def __init__(self):
        self.receipts: List[StepReceipt] = []
        self.prev_receipt_hash = GENESIS_HASH

    @staticmethod
    def _digest(body: Dict) -> str:
        receipt_str = json.dumps(body, sort_keys=True)
        return hashlib.sha256(receipt_str.encode()).hexdigest()

    def emit(self, step: int, attempt: int, event: str, state: SystemState, dt: float,
             tau_sched: float, residual: float, reasons=()) -> StepReceipt:
        body = {
            'step': step,
            'attempt': attempt,
            'event': event,
            't': float(state.t),
            'dt': float(dt),
            'tau_sched': float(tau_sched),
            'residual': float(residual),
            'reasons': list(reasons),
            'state_hash': state_hash(state),
            'prev_receipt_hash': self.prev_receipt_hash,
        }
        receipt_hash = self._digest(body)
        receipt = StepReceipt(
            step=step, attempt=attempt, event=event, t=body['t'], dt=body['dt'],
            tau_sched=body['tau_sched'], residual=body['residual'],
            reasons=tuple(reasons), state_hash=body['state_hash'],
            prev_receipt_hash=self.prev_receipt_hash, receipt_hash=receipt_hash,
        )
        self.receipts.append(receipt)
        self.prev_receipt_hash = receipt_hash
        return receipt

    def verify(self) -> bool:
        """Re-derive every hash and check the links."""
        prev = GENESIS_HASH
        for receipt in self.receipts:
            body = receipt.to_dict()
            claimed = body.pop('receipt_hash')
            if body['prev_receipt_hash'] != prev or self._digest(body) != claimed:
                logger.warning("Receipt chain broken", extra={"extra_data": {
                    "step": receipt.step, "attempt": receipt.attempt,
                }})
                return False
            prev = claimed
        return True

    @property
    def last_hash(self) -> Optional[str]:
        return self.receipts[-1].receipt_hash if self.receipts else None

    def __len__(self):
        return len(self.receipts)

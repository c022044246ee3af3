"""
Engine Core - Turn sequencing and numeric state.

Pieces:
1. Verdict: normalized Judge output with range checks
2. TurnLedger: append-only turns, one pending at a time
3. CombatState: clamped health pools and battle outcome
"""

from .verdict import SessionMode, Verdict, round_half_up, score_band
from .ledger import Turn, TurnLedger, TurnHistory
from .combat import CombatState, DamageResult, Outcome, MAX_HP

__all__ = [
    "SessionMode",
    "Verdict",
    "round_half_up",
    "score_band",
    "Turn",
    "TurnLedger",
    "TurnHistory",
    "CombatState",
    "DamageResult",
    "Outcome",
    "MAX_HP",
]

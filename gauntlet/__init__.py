"""
Gauntlet - Turn-Based AI Evaluation Engine

Runs bounded prompt -> response -> judgment cycles for a project under review.
Two modes share one mechanic:
- Viva: a fixed bank of questions, each answer scored 0-10
- Battle: an adversarial exchange with two health pools and a win/lose outcome

Answer quality is decided by an external Judge service. The engine owns
sequencing, numeric invariants and terminal-state detection.
"""

__version__ = "0.1.0"

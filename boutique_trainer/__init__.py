"""
Boutique sales trainer backend.

Packages:
- components: persona generation, dialogue driving, sessions, STT, persistence, reports
- llm_judge: rubric-based evaluation of finished training dialogues
"""

__version__ = "0.1.0"

"""
memoir - Conversational memory for chat agents

This package records every exchange an agent has, and builds the memory
context (important facts, recent turns, related past turns) that goes in
front of each new prompt.
"""

__version__ = "1.0.0"

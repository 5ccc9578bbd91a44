"""Security package for QuestGate."""

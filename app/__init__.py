"""
Memory Recall Application

Captures free-text personal memories, turns them into summaries and
vector embeddings in the background, and recalls them with natural-language
queries that may contain relative dates ("last Monday at the gym").
"""

__version__ = "1.0.0"
__author__ = "Memory Pipeline Team"
__description__ = "Memory capture and hybrid temporal/semantic recall"

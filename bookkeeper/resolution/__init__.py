"""Subject resolution: maps typed subjects to category entries."""

from bookkeeper.resolution.resolver import SubjectResolver
from bookkeeper.resolution.similarity import levenshtein_distance, similarity

__all__ = ["SubjectResolver", "levenshtein_distance", "similarity"]

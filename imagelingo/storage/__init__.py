"""Generation persistence."""

from imagelingo.storage.generations import GenerationStore

__all__ = ["GenerationStore"]

"""Child identity protection for text sent to AI providers."""
from .anonymizer import ChildAnonymizer, ChildMapping

__all__ = ['ChildAnonymizer', 'ChildMapping']

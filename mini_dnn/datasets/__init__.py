"""
Dataset loaders.
"""
from . import mnist

__all__ = ['mnist']

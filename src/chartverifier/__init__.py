"""
ChartVerifier - install charts into throwaway namespaces and verify they come up
"""

__version__ = "0.1.0"

from .core import ChartVerifier, VerifierError
from .models import VerificationResult, WaitPolicy

__all__ = ["ChartVerifier", "VerificationResult", "VerifierError", "WaitPolicy"]

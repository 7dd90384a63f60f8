"""
Functional testing of a confirmed device's web endpoints
"""

from .models import ApiTestResult, TestResult
from .tester import FunctionalTester

__all__ = ['ApiTestResult', 'TestResult', 'FunctionalTester']

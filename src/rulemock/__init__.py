"""
RuleMock

Development-time HTTP mock/proxy server driven by composable request rules.
"""

__version__ = '1.0.0'

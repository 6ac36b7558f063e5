"""
Multi-factor stock ranking engine
"""
__version__ = "1.0.0"

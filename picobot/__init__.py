"""
picobot - a small conversational agent with persistent threads
"""

__version__ = "0.1.0"
__logo__ = "🤖"

"""
treasury-agent: evaluates creator coins and proposes treasury buys for a Builder DAO.
"""

__version__ = "0.1.0"

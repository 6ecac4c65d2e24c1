"""
Alert router: grouping, inhibition and routing of alert notifications.
"""

__version__ = '1.0.0'

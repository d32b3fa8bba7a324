"""
Service-wide constants
"""

SERVICE_NAME = "attendance-tracker"
DEFAULT_VERSION = "1.0.0"

"""
EmoSense - Conversational Triage Package

This package contains the triage backend:
- Two-tier risk classification (keyword safety net + remote classifier)
- Session state and the crisis escalation flow
- Scripted coping interventions
- Console and HTTP surfaces over the same core
"""

__version__ = "0.1.0"

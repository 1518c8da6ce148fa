"""
Glide / Stripe Connect bridge

Small HTTP relay between a Glide app and Stripe Connect onboarding:
1. Create a connected account + onboarding link for a Glide row
2. Remember which account belongs to which row
3. On account.updated, push a dashboard link back to the row
4. Re-issue onboarding links for rows that already have an account
"""

from .app import create_app
from .routes import bp

__all__ = ['create_app', 'bp']
